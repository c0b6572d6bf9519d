"""Tests for the per-target poll task.

Tasks are run synchronously on the test thread against a real RunState; the
results they submit are read back from the state's event queue.
"""

from __future__ import annotations

import threading

from fleetcmd.collector import RunState
from fleetcmd.command_service import CommandServiceError
from fleetcmd.output_extender import TRUNCATION_MARKER, OutputExtender
from fleetcmd.poll_task import PollTask
from fleetcmd.results import Result
from fleetcmd.types import ErrorKind, InvocationStatus, RunOutcome
from tests.helpers import FAST_FREQUENCY, wait_until
from tests.mocks import MockBlobStore, MockCommandService, success


def _make_task(
    service: MockCommandService,
    state: RunState,
    target_id: str = "i-1",
    **kwargs: object,
) -> PollTask:
    return PollTask(
        target_id=target_id,
        command_id="cmd-0001",
        service=service,
        state=state,
        frequency=FAST_FREQUENCY,
        **kwargs,  # type: ignore[arg-type]
    )


def _drain_results(state: RunState) -> list[Result]:
    results = []
    while (event := state.next_event(0.0)) is not None:
        if isinstance(event, Result):
            results.append(event)
    return results


class TestPolling:
    """Tests for the polling loop."""

    def test_polls_until_terminal(self) -> None:
        service = MockCommandService(scripts={"i-1": ["Pending", "Pending", success("final")]})
        state = RunState("cmd-0001", ["i-1"])
        task = _make_task(service, state)

        result = task.run()

        assert result is not None
        assert result.status == InvocationStatus.SUCCESS
        assert result.output == "final"
        assert task.polls == 3
        assert service.poll_count("i-1") == 3
        assert _drain_results(state) == [result]

    def test_transport_error_on_first_poll_stops_polling(self) -> None:
        service = MockCommandService(scripts={"i-1": [CommandServiceError("access denied")]})
        state = RunState("cmd-0001", ["i-1"])

        result = _make_task(service, state).run()

        assert result is not None
        assert result.error is not None
        assert result.error.kind == ErrorKind.TRANSPORT
        assert service.poll_count("i-1") == 1

    def test_unrecoverable_status_stops_polling(self) -> None:
        service = MockCommandService(scripts={"i-1": ["InProgress", "Exploded"]})
        state = RunState("cmd-0001", ["i-1"])

        result = _make_task(service, state).run()

        assert result is not None
        assert result.error is not None
        assert result.error.kind == ErrorKind.UNRECOVERABLE
        assert service.poll_count("i-1") == 2

    def test_cancelled_status_is_reported(self) -> None:
        service = MockCommandService(scripts={"i-1": ["InProgress", "Cancelled"]})
        state = RunState("cmd-0001", ["i-1"])

        result = _make_task(service, state).run()

        assert result is not None
        assert result.status == InvocationStatus.CANCELLED

    def test_target_timeout_reports_timeout(self) -> None:
        service = MockCommandService(scripts={"i-1": ["InProgress"]})
        state = RunState("cmd-0001", ["i-1"])

        result = _make_task(service, state, target_timeout=0.02).run()

        assert result is not None
        assert result.status == InvocationStatus.UNKNOWN
        assert result.error is not None
        assert result.error.kind == ErrorKind.TIMEOUT
        assert state.summary.outcome == RunOutcome.COMPLETED


class TestForcedStop:
    """Tests for force_stop()."""

    def test_stop_before_start_emits_nothing(self) -> None:
        service = MockCommandService()
        state = RunState("cmd-0001", ["i-1"])
        task = _make_task(service, state)

        task.force_stop()
        result = task.run()

        assert result is None
        assert task.stopped
        assert service.poll_calls == []
        assert _drain_results(state) == []
        assert state.finished_count == 1

    def test_stop_while_polling(self) -> None:
        service = MockCommandService(scripts={"i-1": ["InProgress"]})
        state = RunState("cmd-0001", ["i-1"])
        task = _make_task(service, state)
        outcome: list[Result | None] = []

        thread = threading.Thread(target=lambda: outcome.append(task.run()))
        thread.start()
        try:
            assert wait_until(lambda: service.poll_count("i-1") >= 3)
        finally:
            task.force_stop()
            thread.join(timeout=2.0)

        assert not thread.is_alive()
        assert outcome == [None]
        assert _drain_results(state) == []

    def test_result_after_close_is_not_delivered(self) -> None:
        service = MockCommandService(scripts={"i-1": [success("late")]})
        state = RunState("cmd-0001", ["i-1"])
        state.close(RunOutcome.TIMED_OUT)

        result = _make_task(service, state).run()

        assert result is None
        assert _drain_results(state) == []
        assert state.summary.abandoned == ["i-1"]


class TestExtension:
    """Tests for the output extension step."""

    def test_truncated_output_is_extended(self) -> None:
        service = MockCommandService(
            scripts={
                "i-1": [success(f"head{TRUNCATION_MARKER}", stdout_locator="s3://b/cmd/i-1/stdout")]
            }
        )
        extender = OutputExtender(MockBlobStore({"s3://b/cmd/i-1/stdout": b"everything"}))
        state = RunState("cmd-0001", ["i-1"])

        result = _make_task(service, state, extender=extender).run()

        assert result is not None
        assert result.output == "everything"

    def test_errored_result_is_not_extended(self) -> None:
        store = MockBlobStore()
        service = MockCommandService(scripts={"i-1": [CommandServiceError("boom")]})
        state = RunState("cmd-0001", ["i-1"])

        result = _make_task(service, state, extender=OutputExtender(store)).run()

        assert result is not None
        assert store.fetch_calls == []
