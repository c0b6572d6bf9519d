"""Replacement of truncated command output with its full blob-stored copy.

The command service inlines only the head of large outputs and appends
``TRUNCATION_MARKER``. When output extension is enabled, the full content is
fetched from the blob store through the locator the service reported (or one
derived from the configured bucket and key prefix).

Extension never fails a run: any problem resolving or fetching a locator is
attached to that target's Result as an ``extension`` error and the truncated
text is kept.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from urllib.parse import unquote, urlsplit

from fleetcmd.command_service import BlobStore, BlobStoreError, LocatorError
from fleetcmd.logging import get_logger
from fleetcmd.results import Result, TargetError
from fleetcmd.types import ErrorKind, InvocationStatus

logger = get_logger(__name__)

TRUNCATION_MARKER = "--output truncated--"

# Object path the service writes per target below "<prefix>/<command id>/<target id>/"
DEFAULT_PLUGIN_PATH = "awsrunShellScript/0.awsrunShellScript"


@dataclass(frozen=True)
class BlobLocation:
    """A parsed locator: a container (bucket) and a key inside it."""

    container: str
    key: str

    @property
    def url(self) -> str:
        return f"s3://{self.container}/{self.key}"


def parse_locator(locator: str) -> BlobLocation:
    """Parse a storage URL into its container and key.

    Accepted forms::

        s3://bucket/key
        https://bucket.s3.<region>.amazonaws.com/key      (virtual-hosted style)
        https://<any storage endpoint>/bucket/key         (path style)

    Args:
        locator: The locator reported by the command service.

    Returns:
        The parsed BlobLocation.

    Raises:
        LocatorError: If the locator is not a recognizable storage URL.
    """
    if not locator or not locator.strip():
        raise LocatorError("empty locator")

    parts = urlsplit(locator.strip())
    host = (parts.hostname or "").lower()
    path = unquote(parts.path).lstrip("/")

    if parts.scheme == "s3":
        container, key = host, path
    elif parts.scheme in ("http", "https") and host:
        if host.endswith(".amazonaws.com") and not host.startswith(("s3.", "s3-")):
            container = host.split(".s3", 1)[0]
            key = path
        else:
            container, _, key = path.partition("/")
    else:
        raise LocatorError(f"unsupported locator: {locator}")

    if not container or not key:
        raise LocatorError(f"locator has no container or key: {locator}")
    return BlobLocation(container=container, key=key)


class OutputExtender:
    """Fetches the full content of truncated Result output.

    Args:
        blob_store: Store the full outputs are fetched from.
        default_bucket: Bucket used to derive a locator when the service
            reported none.
        key_prefix: Key prefix the outputs were written under.
        plugin_path: Per-target object path below the command id and target id.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        default_bucket: str = "",
        key_prefix: str = "",
        plugin_path: str = DEFAULT_PLUGIN_PATH,
    ) -> None:
        self._blob_store = blob_store
        self._default_bucket = default_bucket
        self._key_prefix = key_prefix.strip("/")
        self._plugin_path = plugin_path.strip("/")

    @staticmethod
    def needs_extension(result: Result) -> bool:
        """Whether either output channel of the result carries the truncation marker."""
        return TRUNCATION_MARKER in result.output or TRUNCATION_MARKER in result.stderr

    def extend(self, result: Result, command_id: str | None = None) -> Result:
        """Return the result with truncated channels replaced by their full content.

        Each channel is extended independently with its own locator. Channels
        without the marker are left untouched.

        Args:
            result: A terminal result.
            command_id: Command id, used only to derive missing locators.

        Returns:
            A new Result, or ``result`` itself when nothing was truncated.
        """
        if not self.needs_extension(result):
            return result

        ctx_logger = logger.with_context(target_id=result.target_id, command_id=command_id)
        changes: dict[str, object] = {}
        failures: list[str] = []

        output_channel = "stderr" if result.status == InvocationStatus.FAILED else "stdout"
        if TRUNCATION_MARKER in result.output:
            try:
                locator = self._resolve_locator(
                    result.extended_locator, result.target_id, command_id, output_channel
                )
                changes["output"] = self._fetch_text(locator)
                changes["extended_locator"] = locator
            except BlobStoreError as e:
                failures.append(f"{output_channel}: {e}")

        if TRUNCATION_MARKER in result.stderr:
            try:
                locator = self._resolve_locator(
                    result.stderr_locator, result.target_id, command_id, "stderr"
                )
                changes["stderr"] = self._fetch_text(locator)
                changes["stderr_locator"] = locator
            except BlobStoreError as e:
                failures.append(f"stderr: {e}")

        if failures:
            message = "failed to extend output: " + "; ".join(failures)
            ctx_logger.warning(message)
            if result.error is None:
                changes["error"] = TargetError(ErrorKind.EXTENSION, message)
        else:
            ctx_logger.debug("Extended truncated output from blob store")

        return replace(result, **changes)  # type: ignore[arg-type]

    def _resolve_locator(
        self,
        reported: str | None,
        target_id: str,
        command_id: str | None,
        channel: str,
    ) -> str:
        if reported:
            parse_locator(reported)
            return reported
        if not self._default_bucket or not command_id:
            raise LocatorError(f"no locator reported for truncated {channel}")
        segments = [self._key_prefix, command_id, target_id, self._plugin_path, channel]
        key = "/".join(s for s in segments if s)
        return BlobLocation(container=self._default_bucket, key=key).url

    def _fetch_text(self, locator: str) -> str:
        return self._blob_store.fetch(locator).decode("utf-8", errors="replace")


__all__ = [
    "DEFAULT_PLUGIN_PATH",
    "TRUNCATION_MARKER",
    "BlobLocation",
    "OutputExtender",
    "parse_locator",
]
