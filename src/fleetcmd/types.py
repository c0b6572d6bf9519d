"""Type definitions and enums for fleetcmd.

This module provides the enums shared by the classifier, the poll tasks and
the collector, replacing magic strings with type-safe constants.

Usage:
    from fleetcmd.types import InvocationStatus, ErrorKind

    # InvocationStatus inherits from StrEnum, so direct comparison works
    if status == InvocationStatus.SUCCESS:
        ...

    InvocationStatus.parse("InProgress")  # InvocationStatus.IN_PROGRESS
    InvocationStatus.parse("TimedOut")  # InvocationStatus.UNKNOWN
"""

from __future__ import annotations

from enum import StrEnum


class InvocationStatus(StrEnum):
    """Status of one command invocation on one target.

    Values mirror the raw status strings reported by the command service.
    ``UNKNOWN`` stands for any raw status the classifier does not recognize,
    and for transport failures where no status was obtained at all.

    Values:
        PENDING: Queued, not yet delivered ("Pending")
        IN_PROGRESS: Running on the target ("InProgress")
        DELAYED: Delivery retried by the service ("Delayed")
        SUCCESS: Completed with exit status zero ("Success")
        FAILED: Completed with a non-zero exit status ("Failed")
        CANCELLED: Cancelled before completion ("Cancelled")
        UNKNOWN: Unrecognized or unavailable ("Unknown")
    """

    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    DELAYED = "Delayed"
    SUCCESS = "Success"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    UNKNOWN = "Unknown"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can occur from this status."""
        return self not in _NON_TERMINAL

    @classmethod
    def parse(cls, raw: str) -> InvocationStatus:
        """Map a raw status string to a member, falling back to UNKNOWN.

        Args:
            raw: Raw status string as reported by the service.

        Returns:
            The matching member, or ``UNKNOWN`` for unrecognized strings.
        """
        member = cls._value2member_map_.get(raw)
        if member is None or member is cls.UNKNOWN:
            return cls.UNKNOWN
        return member  # type: ignore[return-value]


_NON_TERMINAL = frozenset(
    {InvocationStatus.PENDING, InvocationStatus.IN_PROGRESS, InvocationStatus.DELAYED}
)


class ErrorKind(StrEnum):
    """Categories of per-target failure attached to a Result.

    Values:
        TRANSPORT: The poll call itself failed ("transport")
        UNRECOVERABLE: The service reported an unrecognized status ("unrecoverable")
        TIMEOUT: The per-target timeout elapsed ("timeout")
        EXTENSION: Truncated output could not be extended ("extension")
        INTERNAL: The poll task crashed unexpectedly ("internal")
    """

    TRANSPORT = "transport"
    UNRECOVERABLE = "unrecoverable"
    TIMEOUT = "timeout"
    EXTENSION = "extension"
    INTERNAL = "internal"


class RunOutcome(StrEnum):
    """How a run's result stream closed.

    Values:
        RUNNING: The stream is still open ("running")
        COMPLETED: Every target reported a Result ("completed")
        TIMED_OUT: The run deadline elapsed first ("timed_out")
        ABORTED: A second interrupt force-stopped outstanding targets ("aborted")
        CANCEL_FAILED: The graceful cancellation request failed ("cancel_failed")
    """

    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"
    CANCEL_FAILED = "cancel_failed"


__all__ = [
    "ErrorKind",
    "InvocationStatus",
    "RunOutcome",
]
