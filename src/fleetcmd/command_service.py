"""Interfaces of the remote collaborators a run talks to.

The core only ever sees these abstractions:

- ``CommandService``: dispatches an action to targets, cancels it and reports
  per-target invocation status.
- ``BlobStore``: fetches output that the command service reported as truncated.

Concrete implementations live in ``fleetcmd.ssm_clients`` (boto3) and
``fleetcmd.http_blob_store`` (httpx). Tests use the scripted doubles in
``tests.mocks``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from fleetcmd.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DOCUMENT = "AWS-RunShellScript"


class CommandServiceError(Exception):
    """Raised when a call to the command service itself fails."""

    pass


class DispatchError(CommandServiceError):
    """Raised when the initial dispatch of a command fails."""

    pass


class BlobStoreError(Exception):
    """Raised when a blob cannot be fetched."""

    pass


class LocatorError(BlobStoreError):
    """Raised when a blob locator cannot be parsed."""

    pass


@dataclass(frozen=True)
class ActionSpec:
    """What to run: a named document and its string parameters."""

    name: str
    parameters: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def shell(cls, command: str, document: str = DEFAULT_DOCUMENT) -> ActionSpec:
        """Build the action for a single shell command line.

        Args:
            command: The command line to run on each target.
            document: Document that interprets the ``commands`` parameter.

        Returns:
            ActionSpec for the command.
        """
        return cls(name=document, parameters={"commands": command})


@dataclass(frozen=True)
class PollResponse:
    """Raw answer to one poll of one target."""

    status_raw: str
    stdout: str = ""
    stderr: str = ""
    stdout_locator: str | None = None
    stderr_locator: str | None = None


class CommandService(ABC):
    """Abstract interface for the remote command service.

    Implementations must be safe to call from many poll threads at once.
    Every failure of the underlying transport is raised as
    ``CommandServiceError``.
    """

    @abstractmethod
    def send(self, targets: Sequence[str], action: ActionSpec) -> str:
        """Dispatch an action to the targets.

        Args:
            targets: Target identifiers.
            action: The action to run.

        Returns:
            The command id correlating the per-target invocations.

        Raises:
            DispatchError: If the command could not be dispatched.
        """
        pass

    @abstractmethod
    def cancel(self, targets: Sequence[str], command_id: str) -> None:
        """Request cancellation of a command on the targets.

        Raises:
            CommandServiceError: If the request failed.
        """
        pass

    @abstractmethod
    def poll(self, command_id: str, target_id: str) -> PollResponse:
        """Fetch the current invocation status of a command on one target.

        Raises:
            CommandServiceError: If the poll call failed.
        """
        pass


class BlobStore(ABC):
    """Abstract interface for fetching extended command output."""

    @abstractmethod
    def fetch(self, locator: str) -> bytes:
        """Fetch the content stored at a locator.

        Raises:
            LocatorError: If the locator is not understood by this store.
            BlobStoreError: If the fetch failed.
        """
        pass


def dispatch_command(service: CommandService, targets: Sequence[str], action: ActionSpec) -> str:
    """Dispatch an action and return its command id.

    Dispatch is not retried: any failure surfaces to the caller at once.

    Args:
        service: Command service to dispatch through.
        targets: Target identifiers; must not be empty.
        action: The action to run.

    Returns:
        The command id.

    Raises:
        DispatchError: If there are no targets or the service call failed.
    """
    if not targets:
        raise DispatchError("No targets to dispatch to")
    try:
        command_id = service.send(targets, action)
    except DispatchError:
        raise
    except CommandServiceError as e:
        raise DispatchError(f"Failed to dispatch {action.name}: {e}") from e
    logger.info(
        "Dispatched %s to %s target(s)",
        action.name,
        len(targets),
        extra={"command_id": command_id},
    )
    return command_id


__all__ = [
    "DEFAULT_DOCUMENT",
    "ActionSpec",
    "BlobStore",
    "BlobStoreError",
    "CommandService",
    "CommandServiceError",
    "DispatchError",
    "LocatorError",
    "PollResponse",
    "dispatch_command",
]
