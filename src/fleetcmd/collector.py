"""Fan-out collection of per-target results for one command.

The collector starts one ``PollTask`` per target on an ``ExecutionManager``
and multiplexes their Results onto a single ``ResultStream``. The stream is
read by exactly one consumer and is closed only by the collector, when:

- every target has reported a Result (``RunOutcome.COMPLETED``),
- the run deadline elapsed (``RunOutcome.TIMED_OUT``, raises ``RunTimeoutError``),
- a second interrupt forced an abort (``RunOutcome.ABORTED``), or
- the graceful cancellation request failed (``RunOutcome.CANCEL_FAILED``,
  raises ``CancelRequestError``).

Poll tasks and the consumer share only ``RunState``: a lock-guarded record of
which targets have reported, plus one multi-producer/single-consumer event
queue. Results accepted before the stream closed are always delivered; no
Result is accepted afterwards.

Usage::

    stream = run_and_collect(service, targets, command_id, deadline=30.0)
    for result in stream:
        print(result.target_id, result.status)
    print(stream.summary.outcome)
"""

from __future__ import annotations

import queue
import threading
import time
import types
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import Future

from fleetcmd.abort import AbortCoordinator, AbortStage
from fleetcmd.command_service import CommandService, CommandServiceError
from fleetcmd.execution_manager import ExecutionManager
from fleetcmd.interrupts import InterruptSource
from fleetcmd.logging import get_logger, log_result_summary
from fleetcmd.output_extender import OutputExtender
from fleetcmd.poll_task import DEFAULT_FREQUENCY, PollTask
from fleetcmd.results import Result, RunSummary, TargetError
from fleetcmd.types import ErrorKind, InvocationStatus, RunOutcome

logger = get_logger(__name__)

# Upper bound on a single blocking wait for events, so deadlines and
# signal-delivered interrupts are noticed promptly
EVENT_WAIT_SLICE = 0.1


class RunError(Exception):
    """A run-level failure. Carries the summary of the closed run."""

    def __init__(self, message: str, summary: RunSummary) -> None:
        super().__init__(message)
        self.summary = summary

    @property
    def abandoned(self) -> list[str]:
        return self.summary.abandoned


class RunTimeoutError(RunError):
    """Raised when the run deadline elapsed before every target reported."""

    pass


class CancelRequestError(RunError):
    """Raised when the graceful cancellation request failed."""

    pass


class _Event:
    """Control events travelling on the result queue alongside Results."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<{self.name}>"


_CLOSED = _Event("closed")
_INTERRUPT = _Event("interrupt")


class RunState:
    """Shared state of one run.

    Thread Safety:
        ``submit``, ``acknowledge_stop`` and ``close`` are called from poll
        threads and the consumer thread; they serialize on one lock. The event
        queue is a ``queue.SimpleQueue``, whose ``put`` is safe to call from a
        signal handler.
    """

    def __init__(self, command_id: str, targets: Sequence[str]) -> None:
        self.command_id = command_id
        self.targets = tuple(targets)
        self.summary = RunSummary(command_id=command_id, targets=self.targets)
        self._target_set = frozenset(self.targets)
        self._lock = threading.Lock()
        self._events: queue.SimpleQueue[Result | _Event] = queue.SimpleQueue()
        self._reported: set[str] = set()
        self._stopped: set[str] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def finished_count(self) -> int:
        """Targets that reported a Result or acknowledged a forced stop."""
        with self._lock:
            return len(self._reported | self._stopped)

    def submit(self, result: Result) -> bool:
        """Accept a target's Result unless the run closed or the target already reported.

        Returns:
            True if the Result was accepted and will be delivered.
        """
        with self._lock:
            target_id = result.target_id
            if self._closed or target_id in self._reported or target_id not in self._target_set:
                return False
            self._reported.add(target_id)
            self.summary.reported.append(target_id)
            self._events.put(result)
            if len(self._reported) == len(self._target_set):
                self._close_locked(RunOutcome.COMPLETED)
            return True

    def acknowledge_stop(self, target_id: str) -> None:
        with self._lock:
            if target_id not in self._reported:
                self._stopped.add(target_id)

    def close(self, outcome: RunOutcome) -> list[str]:
        """Close the run early.

        Returns:
            Targets abandoned without a Result, or an empty list if the run
            had already closed.
        """
        with self._lock:
            if self._closed:
                return []
            return self._close_locked(outcome)

    def post_interrupt(self) -> None:
        self._events.put(_INTERRUPT)

    def next_event(self, timeout: float) -> Result | _Event | None:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def _close_locked(self, outcome: RunOutcome) -> list[str]:
        self._closed = True
        abandoned = [t for t in self.targets if t not in self._reported]
        self.summary.outcome = outcome
        self.summary.abandoned = abandoned
        self._events.put(_CLOSED)
        return abandoned


class ResultStream:
    """Iterator over the Results of one run.

    Iterate it once. When iteration ends normally, ``summary.outcome`` is
    ``COMPLETED`` or ``ABORTED``; a deadline or a failed cancellation raises a
    ``RunError`` after every already-accepted Result has been yielded.
    Leaving the loop early (``break``) or calling ``close()`` force-stops
    outstanding targets.
    """

    def __init__(
        self,
        state: RunState,
        tasks: list[PollTask],
        execution_manager: ExecutionManager,
        coordinator: AbortCoordinator,
        deadline: float | None = None,
        interrupts: InterruptSource | None = None,
    ) -> None:
        self._state = state
        self._tasks = tasks
        self._execution_manager = execution_manager
        self._coordinator = coordinator
        self._deadline_seconds = deadline
        self._deadline_at = time.monotonic() + deadline if deadline else None
        self._interrupts = interrupts
        self._failure: RunError | None = None
        self._iterating = False
        self._log = logger.with_context(command_id=state.command_id)

        if interrupts is not None:
            interrupts.subscribe(state.post_interrupt)

    @property
    def summary(self) -> RunSummary:
        return self._state.summary

    @property
    def command_id(self) -> str:
        return self._state.command_id

    @property
    def abort_stage(self) -> AbortStage:
        return self._coordinator.stage

    def __iter__(self) -> Iterator[Result]:
        if self._iterating:
            raise RuntimeError("ResultStream can only be iterated once")
        self._iterating = True
        return self._iterate()

    def __enter__(self) -> ResultStream:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()

    def interrupt(self) -> None:
        """Deliver an operator interrupt as if it came from the interrupt source.

        Used to replay interrupts that arrived before the stream existed.
        """
        self._state.post_interrupt()

    def close(self) -> None:
        """Abandon outstanding targets and release the worker threads."""
        abandoned = self._state.close(RunOutcome.ABORTED)
        if abandoned:
            self._log.info("Stream closed early, abandoning %s target(s)", len(abandoned))
        self._finish()

    def _iterate(self) -> Iterator[Result]:
        try:
            while True:
                if self._deadline_passed() and not self._state.closed:
                    self._expire()

                event = self._state.next_event(self._wait_slice())
                if event is None:
                    continue

                if event is _CLOSED:
                    break

                if event is _INTERRUPT:
                    self._handle_interrupt()
                    continue

                assert isinstance(event, Result)
                log_result_summary(self._log, event)
                yield event
        finally:
            self.close()

        if self._failure is not None:
            raise self._failure

    def _wait_slice(self) -> float:
        if self._deadline_at is None:
            return EVENT_WAIT_SLICE
        return max(0.0, min(EVENT_WAIT_SLICE, self._deadline_at - time.monotonic()))

    def _deadline_passed(self) -> bool:
        return self._deadline_at is not None and time.monotonic() >= self._deadline_at

    def _expire(self) -> None:
        abandoned = self._state.close(RunOutcome.TIMED_OUT)
        self._force_stop()
        self._log.error(
            "Timeout reached after %ss with %s target(s) outstanding",
            self._deadline_seconds,
            len(abandoned),
        )
        self._failure = RunTimeoutError(
            f"timeout reached after {self._deadline_seconds}s; "
            f"{len(abandoned)} target(s) did not report",
            self._state.summary,
        )

    def _handle_interrupt(self) -> None:
        if self._state.closed:
            return
        try:
            stage = self._coordinator.on_interrupt()
        except CommandServiceError as e:
            self._state.close(RunOutcome.CANCEL_FAILED)
            self._force_stop()
            self._log.error("Failed to cancel command: %s", e)
            failure = CancelRequestError(f"failed to cancel command: {e}", self._state.summary)
            failure.__cause__ = e
            self._failure = failure
            return

        if stage == AbortStage.HARD_ABORTED:
            self._state.close(RunOutcome.ABORTED)
            self._force_stop()

    def _force_stop(self) -> None:
        for task in self._tasks:
            task.force_stop()

    def _finish(self) -> None:
        self._force_stop()
        if self._interrupts is not None:
            self._interrupts.unsubscribe(self._state.post_interrupt)
        self._execution_manager.shutdown(block=False, cancel_futures=True)


class FanOutCollector:
    """Starts one poll task per target and collects their Results.

    Args:
        service: Command service to poll and to send cancellations to.
        frequency: Seconds between polls of one target.
        extender: Output extender, or None when extension is disabled.
        target_timeout: Optional per-target timeout in seconds.
    """

    def __init__(
        self,
        service: CommandService,
        frequency: float = DEFAULT_FREQUENCY,
        extender: OutputExtender | None = None,
        target_timeout: float | None = None,
    ) -> None:
        self._service = service
        self._frequency = frequency
        self._extender = extender
        self._target_timeout = target_timeout

    def run(
        self,
        targets: Sequence[str],
        command_id: str,
        deadline: float | None = None,
        interrupts: InterruptSource | None = None,
    ) -> ResultStream:
        """Start polling every target and return the stream of their Results.

        Args:
            targets: Target identifiers. Duplicates are polled once.
            command_id: Command to collect.
            deadline: Seconds before the run times out; None or 0 disables it.
            interrupts: Source of operator interrupts driving the abort.

        Returns:
            The ResultStream for this run.
        """
        unique_targets = list(dict.fromkeys(targets))
        if len(unique_targets) != len(targets):
            logger.warning(
                "Ignoring %s duplicate target(s)",
                len(targets) - len(unique_targets),
                extra={"command_id": command_id},
            )

        state = RunState(command_id, unique_targets)
        tasks = [
            PollTask(
                target_id=target_id,
                command_id=command_id,
                service=self._service,
                state=state,
                frequency=self._frequency,
                extender=self._extender,
                target_timeout=self._target_timeout,
            )
            for target_id in unique_targets
        ]

        # One worker per target so a stuck target never delays another
        execution_manager = ExecutionManager(max_workers=len(tasks))
        stream = ResultStream(
            state=state,
            tasks=tasks,
            execution_manager=execution_manager,
            coordinator=AbortCoordinator(self._service, unique_targets, command_id),
            deadline=deadline,
            interrupts=interrupts,
        )

        if not tasks:
            state.close(RunOutcome.COMPLETED)
            return stream

        logger.info(
            "Polling %s target(s) every %sms",
            len(tasks),
            int(self._frequency * 1000),
            extra={"command_id": command_id},
        )
        execution_manager.start()
        for task in tasks:
            future = execution_manager.submit(task.run)
            if future is not None:
                future.add_done_callback(_crash_reporter(task, state))
        return stream


def _crash_reporter(task: PollTask, state: RunState) -> Callable[[Future[Result | None]], None]:
    """Build a done-callback that reports a crashed poll task as an internal error."""

    def report(future: Future[Result | None]) -> None:
        if future.cancelled():
            state.acknowledge_stop(task.target_id)
            return
        error = future.exception()
        if error is None:
            return
        logger.error(
            "Poll task crashed: %s",
            error,
            exc_info=error,
            extra={"command_id": task.command_id, "target_id": task.target_id},
        )
        state.submit(
            Result(
                target_id=task.target_id,
                status=InvocationStatus.UNKNOWN,
                error=TargetError(ErrorKind.INTERNAL, f"poll task crashed: {error}"),
            )
        )

    return report


def run_and_collect(
    service: CommandService,
    targets: Sequence[str],
    command_id: str,
    frequency: float = DEFAULT_FREQUENCY,
    deadline: float | None = None,
    interrupts: InterruptSource | None = None,
    extender: OutputExtender | None = None,
    target_timeout: float | None = None,
) -> ResultStream:
    """Collect the Results of an already-dispatched command.

    Args:
        service: Command service the command was dispatched through.
        targets: Targets the command was dispatched to.
        command_id: Id returned by the dispatch.
        frequency: Seconds between polls of one target.
        deadline: Seconds before the whole run times out; None disables it.
        interrupts: Source of operator interrupts.
        extender: Output extender, when extension is enabled.
        target_timeout: Optional per-target timeout in seconds.

    Returns:
        The ResultStream for the run.
    """
    collector = FanOutCollector(
        service,
        frequency=frequency,
        extender=extender,
        target_timeout=target_timeout,
    )
    return collector.run(targets, command_id, deadline=deadline, interrupts=interrupts)


__all__ = [
    "CancelRequestError",
    "FanOutCollector",
    "ResultStream",
    "RunError",
    "RunState",
    "RunTimeoutError",
    "run_and_collect",
]
