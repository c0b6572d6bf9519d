"""Tests for fleetcmd enums and result types."""

from __future__ import annotations

from fleetcmd.results import Result, RunSummary, TargetError
from fleetcmd.types import ErrorKind, InvocationStatus, RunOutcome
from tests.helpers import make_result


class TestInvocationStatus:
    """Tests for InvocationStatus parsing and terminality."""

    def test_parse_known_values(self) -> None:
        assert InvocationStatus.parse("InProgress") is InvocationStatus.IN_PROGRESS
        assert InvocationStatus.parse("Success") is InvocationStatus.SUCCESS

    def test_parse_unknown_values(self) -> None:
        assert InvocationStatus.parse("TimedOut") is InvocationStatus.UNKNOWN
        assert InvocationStatus.parse("") is InvocationStatus.UNKNOWN

    def test_terminality(self) -> None:
        non_terminal = {s for s in InvocationStatus if not s.is_terminal}
        assert non_terminal == {
            InvocationStatus.PENDING,
            InvocationStatus.IN_PROGRESS,
            InvocationStatus.DELAYED,
        }

    def test_str_comparison(self) -> None:
        assert InvocationStatus.FAILED == "Failed"
        assert f"{InvocationStatus.CANCELLED}" == "Cancelled"


class TestResult:
    """Tests for Result.succeeded."""

    def test_success_without_error(self) -> None:
        assert make_result().succeeded

    def test_extension_warning_still_succeeds(self) -> None:
        result = make_result(error_kind=ErrorKind.EXTENSION, error_message="no locator")
        assert result.error is not None
        assert result.error.is_warning
        assert result.succeeded

    def test_transport_error_fails(self) -> None:
        result = make_result(status=InvocationStatus.UNKNOWN, error_kind=ErrorKind.TRANSPORT)
        assert not result.succeeded

    def test_failed_status_fails(self) -> None:
        assert not Result(target_id="i-1", status=InvocationStatus.FAILED).succeeded

    def test_target_error_str_is_message(self) -> None:
        assert str(TargetError(ErrorKind.TIMEOUT, "too slow")) == "too slow"


class TestRunSummary:
    """Tests for RunSummary reconciliation."""

    def test_open_summary(self) -> None:
        summary = RunSummary(command_id="c", targets=("a", "b"))
        assert not summary.closed
        assert not summary.reconciled

    def test_reconciled_with_abandoned(self) -> None:
        summary = RunSummary(
            command_id="c",
            targets=("a", "b"),
            outcome=RunOutcome.ABORTED,
            reported=["b"],
            abandoned=["a"],
        )
        assert summary.closed
        assert summary.reconciled

    def test_duplicate_report_is_not_reconciled(self) -> None:
        summary = RunSummary(
            command_id="c",
            targets=("a", "b"),
            outcome=RunOutcome.COMPLETED,
            reported=["a", "a"],
        )
        assert not summary.reconciled
