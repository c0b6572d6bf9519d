"""Classification of raw poll responses into Results.

``classify`` is a pure function: it never calls a service and never logs.
The poll task decides what to do with the ``(result, is_terminal)`` pair.
"""

from __future__ import annotations

from fleetcmd.command_service import PollResponse
from fleetcmd.results import CANCELLED_OUTPUT, Result, TargetError
from fleetcmd.types import ErrorKind, InvocationStatus


def classify(
    target_id: str,
    response: PollResponse | None,
    error: BaseException | None = None,
) -> tuple[Result, bool]:
    """Map one poll outcome to a normalized Result.

    Args:
        target_id: Target that was polled.
        response: The poll response, or None when the call failed.
        error: The transport failure, if the poll call raised.

    Returns:
        ``(result, is_terminal)``. When ``is_terminal`` is False the result is a
        placeholder and the caller must poll again.
    """
    if error is not None or response is None:
        message = str(error) if error is not None else "poll returned no response"
        return (
            Result(
                target_id=target_id,
                status=InvocationStatus.UNKNOWN,
                error=TargetError(ErrorKind.TRANSPORT, message),
            ),
            True,
        )

    status = InvocationStatus.parse(response.status_raw)

    match status:
        case InvocationStatus.PENDING | InvocationStatus.IN_PROGRESS | InvocationStatus.DELAYED:
            return Result(target_id=target_id, status=status), False
        case InvocationStatus.CANCELLED:
            return Result(target_id=target_id, status=status, output=CANCELLED_OUTPUT), True
        case InvocationStatus.SUCCESS:
            return (
                Result(
                    target_id=target_id,
                    status=status,
                    output=response.stdout,
                    extended_locator=response.stdout_locator,
                    stderr=response.stderr,
                    stderr_locator=response.stderr_locator,
                ),
                True,
            )
        case InvocationStatus.FAILED:
            return (
                Result(
                    target_id=target_id,
                    status=status,
                    output=response.stderr,
                    extended_locator=response.stderr_locator,
                ),
                True,
            )
        case _:
            # Anything unrecognized ends polling so the target cannot hang the run
            return (
                Result(
                    target_id=target_id,
                    status=InvocationStatus.UNKNOWN,
                    error=TargetError(
                        ErrorKind.UNRECOVERABLE,
                        f"unrecoverable status: {response.status_raw}",
                    ),
                ),
                True,
            )


__all__ = ["classify"]
