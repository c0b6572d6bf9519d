"""AWS implementations of the command service and blob store.

``SsmCommandService`` drives AWS Systems Manager Run Command through boto3:
``send_command`` to dispatch, ``cancel_command`` for graceful cancellation
and ``get_command_invocation`` for per-target polling. ``S3BlobStore`` reads
full outputs written by Run Command to S3.

Every botocore failure is translated into the fleetcmd error hierarchy, so the
core never sees a boto exception.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from fleetcmd.command_service import (
    ActionSpec,
    BlobStore,
    BlobStoreError,
    CommandService,
    CommandServiceError,
    DispatchError,
    PollResponse,
)
from fleetcmd.logging import get_logger
from fleetcmd.output_extender import parse_locator

logger = get_logger(__name__)

DEFAULT_COMMENT = "Interactive command."

# Poll threads share one client; size its connection pool accordingly
DEFAULT_MAX_POOL_CONNECTIONS = 50


def _error_code(exc: BotoCoreError | ClientError) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", "ClientError"))
    return type(exc).__name__


def create_session(region: str = "", profile: str = "") -> boto3.session.Session:
    """Create a boto3 session for the given region and named profile.

    Empty values fall back to the standard AWS environment and config files.
    """
    kwargs: dict[str, str] = {}
    if region:
        kwargs["region_name"] = region
    if profile:
        kwargs["profile_name"] = profile
    return boto3.session.Session(**kwargs)


def _client_config(max_pool_connections: int) -> BotoConfig:
    return BotoConfig(
        max_pool_connections=max_pool_connections,
        retries={"max_attempts": 3, "mode": "standard"},
    )


class SsmCommandService(CommandService):
    """Command service backed by AWS Systems Manager Run Command."""

    def __init__(
        self,
        client: Any | None = None,
        session: boto3.session.Session | None = None,
        comment: str = DEFAULT_COMMENT,
        output_bucket: str = "",
        output_key_prefix: str = "",
        max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
    ) -> None:
        """Initialize the service.

        Args:
            client: Pre-built SSM client; built from ``session`` when omitted.
            session: boto3 session used to build the client.
            comment: Comment attached to dispatched commands.
            output_bucket: S3 bucket Run Command writes full outputs to. Empty
                disables S3 output.
            output_key_prefix: Key prefix for the S3 output.
            max_pool_connections: HTTP connection pool size of the built client.
        """
        if client is None:
            session = session or create_session()
            client = session.client("ssm", config=_client_config(max_pool_connections))
        self._client = client
        self.comment = comment
        self.output_bucket = output_bucket
        self.output_key_prefix = output_key_prefix

    def send(self, targets: Sequence[str], action: ActionSpec) -> str:
        request: dict[str, Any] = {
            "InstanceIds": list(targets),
            "DocumentName": action.name,
            "Comment": self.comment,
            "Parameters": {name: [value] for name, value in action.parameters.items()},
        }
        if self.output_bucket:
            request["OutputS3BucketName"] = self.output_bucket
            if self.output_key_prefix:
                request["OutputS3KeyPrefix"] = self.output_key_prefix

        try:
            response = self._client.send_command(**request)
        except (BotoCoreError, ClientError) as e:
            raise DispatchError(f"send_command failed ({_error_code(e)}): {e}") from e
        return str(response["Command"]["CommandId"])

    def cancel(self, targets: Sequence[str], command_id: str) -> None:
        try:
            self._client.cancel_command(CommandId=command_id, InstanceIds=list(targets))
        except (BotoCoreError, ClientError) as e:
            raise CommandServiceError(f"cancel_command failed ({_error_code(e)}): {e}") from e

    def poll(self, command_id: str, target_id: str) -> PollResponse:
        try:
            response = self._client.get_command_invocation(
                CommandId=command_id, InstanceId=target_id
            )
        except (BotoCoreError, ClientError) as e:
            raise CommandServiceError(
                f"get_command_invocation failed ({_error_code(e)}): {e}"
            ) from e

        return PollResponse(
            status_raw=response.get("StatusDetails") or response.get("Status", ""),
            stdout=response.get("StandardOutputContent", ""),
            stderr=response.get("StandardErrorContent", ""),
            stdout_locator=response.get("StandardOutputUrl") or None,
            stderr_locator=response.get("StandardErrorUrl") or None,
        )


class S3BlobStore(BlobStore):
    """Blob store reading objects from S3 with ``get_object``."""

    def __init__(
        self,
        client: Any | None = None,
        session: boto3.session.Session | None = None,
        max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
    ) -> None:
        if client is None:
            session = session or create_session()
            client = session.client("s3", config=_client_config(max_pool_connections))
        self._client = client

    def fetch(self, locator: str) -> bytes:
        location = parse_locator(locator)
        try:
            response = self._client.get_object(Bucket=location.container, Key=location.key)
            body = response["Body"]
            try:
                return bytes(body.read())
            finally:
                body.close()
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(
                f"get_object {location.url} failed ({_error_code(e)}): {e}"
            ) from e


__all__ = [
    "DEFAULT_COMMENT",
    "S3BlobStore",
    "SsmCommandService",
    "create_session",
]
