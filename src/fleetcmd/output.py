"""Human-readable rendering of run results.

Results are written to stdout as they arrive; logs go to stderr, so the
rendered output can be piped or redirected on its own.
"""

from __future__ import annotations

from typing import TextIO

from fleetcmd.results import Result, RunSummary
from fleetcmd.types import RunOutcome


def render_result(result: Result) -> str:
    """Render one Result as a header line, an optional error line and the output.

    Example::

        <blank line>
        i-0123456789 - Success:
        hello world
    """
    lines = [f"\n{result.target_id} - {result.status}:"]
    if result.error is not None:
        lines.append(str(result.error))
    lines.append(result.output)
    return "\n".join(lines) + "\n"


def write_result(stream: TextIO, result: Result) -> None:
    stream.write(render_result(result))
    stream.flush()


def render_summary(summary: RunSummary) -> str:
    """Render the reconciliation line printed after the last Result."""
    text = (
        f"\n{len(summary.reported)}/{len(summary.targets)} target(s) reported "
        f"({summary.outcome})"
    )
    if summary.abandoned:
        text += f"; abandoned: {', '.join(summary.abandoned)}"
    if summary.outcome == RunOutcome.TIMED_OUT:
        text += "; timed out before all targets reported"
    return text + "\n"


__all__ = ["render_result", "render_summary", "write_result"]
