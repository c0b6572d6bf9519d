"""Core application runner for fleetcmd.

This module provides the main application runner that coordinates:
- Bootstrapping configuration, targets and clients
- Dispatching the command
- Collecting and printing per-target results while handling Ctrl+C

Exit codes:
    0: every target succeeded
    1: at least one target failed, errored or was cancelled
    2: configuration error, dispatch failure or failed cancellation request
    124: the run deadline elapsed
    130: a second interrupt force-stopped the run
"""

from __future__ import annotations

import sys
from typing import TextIO

from fleetcmd.bootstrap import BootstrapContext, bootstrap
from fleetcmd.cli import parse_args
from fleetcmd.collector import CancelRequestError, RunTimeoutError, run_and_collect
from fleetcmd.command_service import ActionSpec, DispatchError, dispatch_command
from fleetcmd.config import ConfigurationError
from fleetcmd.interrupts import InterruptSource, SignalInterruptSource
from fleetcmd.logging import get_logger
from fleetcmd.output import render_summary, write_result
from fleetcmd.types import RunOutcome

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_TARGET_FAILED = 1
EXIT_ERROR = 2
EXIT_TIMEOUT = 124
EXIT_ABORTED = 130


def run_command(
    context: BootstrapContext,
    interrupts: InterruptSource | None = None,
    out: TextIO | None = None,
    err: TextIO | None = None,
) -> int:
    """Dispatch the command and print each target's result as it arrives.

    Args:
        context: Bootstrap context with configuration, targets and clients.
        interrupts: Interrupt source driving the two-stage abort.
        out: Stream results are written to (default: stdout).
        err: Stream the run summary is written to (default: stderr).

    Returns:
        Exit code for the application.
    """
    out = out or sys.stdout
    err = err or sys.stderr
    config = context.config

    action = ActionSpec.shell(context.command, document=config.document)
    delivered_before = interrupts.delivered if interrupts is not None else 0
    try:
        command_id = dispatch_command(context.service, context.targets, action)
    except DispatchError as e:
        logger.error("Failed to dispatch command: %s", e)
        return EXIT_ERROR

    logger.info("Initialized with targets: %s", ", ".join(context.targets))
    logger.info("Use ctrl-c to abort the command early")

    # Interrupts delivered during dispatch had no subscriber yet
    missed = interrupts.delivered - delivered_before if interrupts is not None else 0
    stream = run_and_collect(
        context.service,
        context.targets,
        command_id,
        frequency=config.poll_frequency,
        deadline=config.deadline,
        interrupts=interrupts,
        extender=context.extender,
        target_timeout=config.target_deadline,
    )
    if missed:
        logger.warning("Interrupted during dispatch, aborting command %s", command_id)
        for _ in range(missed):
            stream.interrupt()

    all_succeeded = True
    try:
        for result in stream:
            write_result(out, result)
            all_succeeded = all_succeeded and result.succeeded
    except RunTimeoutError as e:
        err.write(render_summary(e.summary))
        return EXIT_TIMEOUT
    except CancelRequestError as e:
        err.write(render_summary(e.summary))
        return EXIT_ERROR

    summary = stream.summary
    err.write(render_summary(summary))
    if summary.outcome == RunOutcome.ABORTED:
        return EXIT_ABORTED
    return EXIT_OK if all_succeeded else EXIT_TARGET_FAILED


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Optional list of command-line arguments.

    Returns:
        Exit code for the application.
    """
    parsed = parse_args(args)

    try:
        context = bootstrap(parsed)
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_ERROR

    try:
        debounce = context.config.interrupt_debounce_ms / 1000
        with SignalInterruptSource(debounce_seconds=debounce) as interrupts:
            return run_command(context, interrupts)
    finally:
        context.close()


__all__ = [
    "EXIT_ABORTED",
    "EXIT_ERROR",
    "EXIT_OK",
    "EXIT_TARGET_FAILED",
    "EXIT_TIMEOUT",
    "main",
    "run_command",
]
