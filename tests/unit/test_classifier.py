"""Tests for classification of raw poll responses."""

from __future__ import annotations

import pytest

from fleetcmd.classifier import classify
from fleetcmd.command_service import CommandServiceError, PollResponse
from fleetcmd.results import CANCELLED_OUTPUT
from fleetcmd.types import ErrorKind, InvocationStatus


class TestNonTerminal:
    """Statuses that require another poll."""

    @pytest.mark.parametrize("raw", ["Pending", "InProgress", "Delayed"])
    def test_waiting_statuses_are_not_terminal(self, raw: str) -> None:
        result, terminal = classify("i-1", PollResponse(status_raw=raw))

        assert terminal is False
        assert result.status == InvocationStatus.parse(raw)
        assert result.error is None


class TestTerminal:
    """Statuses that end polling for a target."""

    def test_success_uses_stdout(self) -> None:
        response = PollResponse(
            status_raw="Success",
            stdout="hello\n",
            stderr="warning: deprecated\n",
            stdout_locator="s3://bucket/out",
            stderr_locator="s3://bucket/err",
        )

        result, terminal = classify("i-1", response)

        assert terminal is True
        assert result.status == InvocationStatus.SUCCESS
        assert result.output == "hello\n"
        assert result.extended_locator == "s3://bucket/out"
        assert result.stderr == "warning: deprecated\n"
        assert result.stderr_locator == "s3://bucket/err"
        assert result.succeeded

    def test_failed_uses_stderr_not_a_system_error(self) -> None:
        response = PollResponse(
            status_raw="Failed",
            stdout="partial",
            stderr="No such file or directory",
            stderr_locator="s3://bucket/err",
        )

        result, terminal = classify("i-1", response)

        assert terminal is True
        assert result.status == InvocationStatus.FAILED
        assert result.output == "No such file or directory"
        assert result.extended_locator == "s3://bucket/err"
        assert result.stderr == ""
        assert result.error is None
        assert not result.succeeded

    def test_cancelled_uses_marker(self) -> None:
        result, terminal = classify("i-1", PollResponse(status_raw="Cancelled", stdout="x"))

        assert terminal is True
        assert result.status == InvocationStatus.CANCELLED
        assert result.output == CANCELLED_OUTPUT

    @pytest.mark.parametrize("raw", ["TimedOut", "Cancelling", "", "success", "Unknown"])
    def test_unrecognized_status_is_unrecoverable(self, raw: str) -> None:
        result, terminal = classify("i-1", PollResponse(status_raw=raw))

        assert terminal is True
        assert result.status == InvocationStatus.UNKNOWN
        assert result.error is not None
        assert result.error.kind == ErrorKind.UNRECOVERABLE
        assert result.error.message == f"unrecoverable status: {raw}"


class TestTransportErrors:
    """A failed poll call ends polling for the target."""

    def test_transport_error_is_terminal(self) -> None:
        error = CommandServiceError("InvocationDoesNotExist")

        result, terminal = classify("i-1", None, error)

        assert terminal is True
        assert result.target_id == "i-1"
        assert result.status == InvocationStatus.UNKNOWN
        assert result.error is not None
        assert result.error.kind == ErrorKind.TRANSPORT
        assert "InvocationDoesNotExist" in result.error.message

    def test_error_wins_over_response(self) -> None:
        result, terminal = classify(
            "i-1", PollResponse(status_raw="Success"), CommandServiceError("throttled")
        )

        assert terminal is True
        assert result.error is not None
        assert result.error.kind == ErrorKind.TRANSPORT
