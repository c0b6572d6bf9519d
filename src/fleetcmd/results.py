"""Result types emitted by a run."""

from __future__ import annotations

from dataclasses import dataclass, field

from fleetcmd.types import ErrorKind, InvocationStatus, RunOutcome

CANCELLED_OUTPUT = "Command was cancelled"


@dataclass(frozen=True)
class TargetError:
    """A failure attached to one target's Result."""

    kind: ErrorKind
    message: str

    @property
    def is_warning(self) -> bool:
        """Extension failures degrade the Result but do not fail the target."""
        return self.kind == ErrorKind.EXTENSION

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Result:
    """The single, final outcome for one target in one run.

    Attributes:
        target_id: Target the result belongs to.
        status: Terminal invocation status (``UNKNOWN`` on local failures).
        output: Standard output on success, standard error on failure, or a
            cancellation marker.
        extended_locator: Blob locator holding the full content of ``output``
            when the service truncated it inline.
        stderr: Standard error of a successful invocation, kept alongside
            ``output``. Empty for every other status.
        stderr_locator: Blob locator for ``stderr``.
        error: Per-target failure, if any.
    """

    target_id: str
    status: InvocationStatus
    output: str = ""
    extended_locator: str | None = None
    stderr: str = ""
    stderr_locator: str | None = None
    error: TargetError | None = None

    @property
    def succeeded(self) -> bool:
        """True for a Success status whose error, if any, is only a warning."""
        if self.status != InvocationStatus.SUCCESS:
            return False
        return self.error is None or self.error.is_warning


@dataclass
class RunSummary:
    """Reconciliation of a run once its stream has closed.

    ``reported`` holds targets that emitted a Result, ``abandoned`` those
    force-stopped (by run timeout, forced abort or a failed cancel) before
    producing one. Once closed, the two together cover every target exactly once.
    """

    command_id: str
    targets: tuple[str, ...]
    outcome: RunOutcome = RunOutcome.RUNNING
    reported: list[str] = field(default_factory=list)
    abandoned: list[str] = field(default_factory=list)

    @property
    def closed(self) -> bool:
        return self.outcome != RunOutcome.RUNNING

    @property
    def reconciled(self) -> bool:
        """Whether every target is accounted for exactly once."""
        accounted = [*self.reported, *self.abandoned]
        return len(accounted) == len(self.targets) and set(accounted) == set(self.targets)


__all__ = [
    "CANCELLED_OUTPUT",
    "Result",
    "RunSummary",
    "TargetError",
]
