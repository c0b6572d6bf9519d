"""Mock classes for fleetcmd tests.

This module provides reusable mock implementations of the command service and
blob store interfaces. These mocks enable isolated unit testing without real
AWS connections.

Usage Guidelines:

    **Direct instantiation** is the preferred approach for most tests::

        from tests.mocks import MockBlobStore, MockCommandService

        def test_example():
            service = MockCommandService(
                scripts={"i-1": ["Pending", "InProgress", success("done")]},
            )
            blob_store = MockBlobStore({"s3://bucket/key": b"full output"})
            # ... use in test ...

    Rationale:

    - Direct instantiation is explicit and makes test setup clearer
    - The scripted poll sequence of every target is visible at the call site

Poll scripts:

    Each target has a list of steps, consumed one per poll call. A step is
    either a raw status string, a ``PollResponse`` or an exception instance
    (raised from ``poll``). Once the list is exhausted the last step repeats,
    so ``["InProgress"]`` means "never finishes". Targets without a script use
    ``default_script``.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence

from fleetcmd.command_service import (
    ActionSpec,
    BlobStore,
    BlobStoreError,
    CommandService,
    CommandServiceError,
    PollResponse,
)

PollStep = str | PollResponse | BaseException


def success(stdout: str = "", stdout_locator: str | None = None, **kwargs: str) -> PollResponse:
    """Build a Success poll response."""
    return PollResponse(status_raw="Success", stdout=stdout, stdout_locator=stdout_locator, **kwargs)


def failed(stderr: str = "", stderr_locator: str | None = None) -> PollResponse:
    """Build a Failed poll response."""
    return PollResponse(status_raw="Failed", stderr=stderr, stderr_locator=stderr_locator)


class MockCommandService(CommandService):
    """Scripted command service for testing.

    Records every call. After ``cancel`` succeeds, targets that have not
    finished report ``Cancelled`` on their next poll, unless
    ``cancel_transitions`` is False (the remote side ignores the request).
    """

    def __init__(
        self,
        scripts: Mapping[str, Sequence[PollStep]] | None = None,
        default_script: Sequence[PollStep] = ("Success",),
        command_id: str = "cmd-0001",
        send_error: CommandServiceError | None = None,
        cancel_error: CommandServiceError | None = None,
        cancel_transitions: bool = True,
    ) -> None:
        self.scripts = {target: list(steps) for target, steps in (scripts or {}).items()}
        self.default_script = list(default_script)
        self.command_id = command_id
        self.send_error = send_error
        self.cancel_error = cancel_error
        self.cancel_transitions = cancel_transitions
        self.send_calls: list[tuple[list[str], ActionSpec]] = []
        self.cancel_calls: list[tuple[list[str], str]] = []
        self.poll_calls: list[tuple[str, str]] = []
        self._cancelled = False
        self._positions: dict[str, int] = {}
        self._lock = threading.Lock()

    def send(self, targets: Sequence[str], action: ActionSpec) -> str:
        self.send_calls.append((list(targets), action))
        if self.send_error is not None:
            raise self.send_error
        return self.command_id

    def cancel(self, targets: Sequence[str], command_id: str) -> None:
        self.cancel_calls.append((list(targets), command_id))
        if self.cancel_error is not None:
            raise self.cancel_error
        with self._lock:
            self._cancelled = self.cancel_transitions

    def poll(self, command_id: str, target_id: str) -> PollResponse:
        with self._lock:
            self.poll_calls.append((command_id, target_id))
            if self._cancelled:
                return PollResponse(status_raw="Cancelled")
            steps = self.scripts.get(target_id, self.default_script)
            position = self._positions.get(target_id, 0)
            self._positions[target_id] = position + 1
            step = steps[min(position, len(steps) - 1)]

        if isinstance(step, BaseException):
            raise step
        if isinstance(step, str):
            return PollResponse(status_raw=step)
        return step

    def poll_count(self, target_id: str) -> int:
        with self._lock:
            return sum(1 for _, target in self.poll_calls if target == target_id)


class MockBlobStore(BlobStore):
    """In-memory blob store keyed by locator."""

    def __init__(self, blobs: Mapping[str, bytes] | None = None) -> None:
        self.blobs = dict(blobs or {})
        self.fetch_calls: list[str] = []
        self._lock = threading.Lock()

    def fetch(self, locator: str) -> bytes:
        with self._lock:
            self.fetch_calls.append(locator)
        try:
            return self.blobs[locator]
        except KeyError:
            raise BlobStoreError(f"no such blob: {locator}") from None
