"""Per-target polling of one command invocation.

A ``PollTask`` owns everything target-specific about a run: its retry ticker,
its optional per-target timeout and its forced-stop flag. It polls the command
service at a fixed frequency until the invocation reaches a terminal status,
then hands exactly one Result to the run state and exits.

State machine::

    Start -> Polling -> {Succeeded | Failed | Cancelled | Errored | TimedOut}
                     +-> Stopped (forced stop, no Result)

Graceful cancellation is not visible here: the task keeps polling and picks up
the ``Cancelled`` status like any other terminal status.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from fleetcmd.classifier import classify
from fleetcmd.command_service import CommandService, CommandServiceError
from fleetcmd.logging import get_logger
from fleetcmd.results import Result, TargetError
from fleetcmd.types import ErrorKind, InvocationStatus

if TYPE_CHECKING:
    from fleetcmd.collector import RunState
    from fleetcmd.output_extender import OutputExtender

logger = get_logger(__name__)

# Default polling frequency in seconds
DEFAULT_FREQUENCY = 0.5


class PollTask:
    """Polls one target until it reports a terminal status or is force-stopped.

    Thread Safety:
        ``run()`` executes on a worker thread; ``force_stop()`` may be called
        from any thread.
    """

    def __init__(
        self,
        target_id: str,
        command_id: str,
        service: CommandService,
        state: RunState,
        frequency: float = DEFAULT_FREQUENCY,
        extender: OutputExtender | None = None,
        target_timeout: float | None = None,
    ) -> None:
        """Initialize the poll task.

        Args:
            target_id: Target to poll.
            command_id: Command whose invocation is polled.
            service: Command service to poll.
            state: Run state receiving the task's single Result.
            frequency: Seconds between poll calls.
            extender: Output extender, when output extension is enabled.
            target_timeout: Seconds after which the target is reported as timed
                out. None disables the per-target timeout.
        """
        self.target_id = target_id
        self.command_id = command_id
        self._service = service
        self._state = state
        self._frequency = frequency
        self._extender = extender
        self._target_timeout = target_timeout
        self._stop = threading.Event()
        self._polls = 0
        self._log = logger.with_context(command_id=command_id, target_id=target_id)

    @property
    def polls(self) -> int:
        """Number of poll calls issued so far."""
        return self._polls

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def force_stop(self) -> None:
        """Stop polling at the next suspension point without emitting a Result."""
        self._stop.set()

    def run(self) -> Result | None:
        """Poll until terminal and submit the Result.

        Returns:
            The submitted Result, or None when the task was force-stopped or
            the run had already closed.
        """
        started = time.monotonic()

        while not self._stop.wait(self._frequency):
            if self._timed_out(started):
                return self._submit(
                    Result(
                        target_id=self.target_id,
                        status=InvocationStatus.UNKNOWN,
                        error=TargetError(
                            ErrorKind.TIMEOUT,
                            f"no terminal status after {self._target_timeout}s",
                        ),
                    )
                )

            self._polls += 1
            try:
                response = self._service.poll(self.command_id, self.target_id)
            except CommandServiceError as e:
                result, terminal = classify(self.target_id, None, e)
            else:
                result, terminal = classify(self.target_id, response)

            if not terminal:
                self._log.debug(
                    "Poll %s: %s",
                    self._polls,
                    result.status,
                    extra={"diagnostic_tag": "polling"},
                )
                continue

            if self._extender is not None and result.error is None:
                result = self._extender.extend(result, self.command_id)
            return self._submit(result)

        self._log.debug("Force-stopped after %s poll(s)", self._polls)
        self._state.acknowledge_stop(self.target_id)
        return None

    def _timed_out(self, started: float) -> bool:
        if self._target_timeout is None:
            return False
        return time.monotonic() - started >= self._target_timeout

    def _submit(self, result: Result) -> Result | None:
        if self._stop.is_set() or not self._state.submit(result):
            self._log.debug("Run closed before result could be delivered")
            self._state.acknowledge_stop(self.target_id)
            return None
        return result


__all__ = ["DEFAULT_FREQUENCY", "PollTask"]
