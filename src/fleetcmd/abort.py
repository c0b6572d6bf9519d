"""Two-stage abort of a running command.

The first interrupt asks the command service to cancel the command and lets
the poll tasks observe ``Cancelled`` through normal polling. A second
interrupt, arriving while results are still outstanding, escalates to a forced
abort: the collector stops every outstanding poll task and closes the stream
without waiting.

    Idle --interrupt--> SoftAborted --interrupt--> HardAborted
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum

from fleetcmd.command_service import CommandService
from fleetcmd.logging import get_logger

logger = get_logger(__name__)


class AbortStage(StrEnum):
    """Escalation stage of an AbortCoordinator."""

    IDLE = "idle"
    SOFT_ABORTED = "soft_aborted"
    HARD_ABORTED = "hard_aborted"


class AbortCoordinator:
    """Turns interrupt notifications into cancellation actions for one run."""

    def __init__(self, service: CommandService, targets: Sequence[str], command_id: str) -> None:
        self._service = service
        self._targets = list(targets)
        self._command_id = command_id
        self._stage = AbortStage.IDLE
        self._interrupts = 0

    @property
    def stage(self) -> AbortStage:
        return self._stage

    @property
    def interrupts(self) -> int:
        return self._interrupts

    def on_interrupt(self) -> AbortStage:
        """Advance the escalation by one interrupt.

        Returns:
            The stage after handling the interrupt. ``HARD_ABORTED`` tells the
            caller to force-stop outstanding work.

        Raises:
            CommandServiceError: If the cancellation request failed. The stage
                stays ``IDLE``.
        """
        self._interrupts += 1

        if self._stage == AbortStage.IDLE:
            logger.info(
                "Interrupt received, cancelling command on %s target(s)",
                len(self._targets),
                extra={"command_id": self._command_id},
            )
            self._service.cancel(self._targets, self._command_id)
            self._stage = AbortStage.SOFT_ABORTED
        elif self._stage == AbortStage.SOFT_ABORTED:
            logger.warning(
                "Second interrupt received, abandoning outstanding targets",
                extra={"command_id": self._command_id},
            )
            self._stage = AbortStage.HARD_ABORTED

        return self._stage


__all__ = ["AbortCoordinator", "AbortStage"]
