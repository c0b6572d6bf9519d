"""Command-line interface argument parsing for fleetcmd.

This module provides the CLI argument parser that handles:
- The command line to run and its targets
- Polling, timeout and connection pool overrides
- Output extension overrides
- Log level override
- Environment file specification
"""

from __future__ import annotations

import argparse
from pathlib import Path


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace. Overrides that were not given are None so
        that configuration loaded from the environment stays in effect.
    """
    parser = argparse.ArgumentParser(
        prog="fleetcmd",
        description="fleetcmd - run a shell command on many managed instances and collect the output",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Press Ctrl+C once to cancel the command on all targets, "
            "twice to stop waiting for results."
        ),
    )

    parser.add_argument(
        "command",
        nargs="+",
        help="Command line to run on every target",
    )

    targets = parser.add_argument_group("targets")
    targets.add_argument(
        "-t",
        "--target",
        dest="targets",
        action="append",
        default=[],
        metavar="ID",
        help="Target instance id (repeatable)",
    )
    targets.add_argument(
        "--target-file",
        type=Path,
        default=None,
        help="File with one target instance id per line",
    )

    polling = parser.add_argument_group("polling")
    polling.add_argument(
        "--frequency",
        type=int,
        default=None,
        metavar="MS",
        help="Poll frequency in milliseconds (overrides FLEETCMD_POLL_FREQUENCY_MS)",
    )
    polling.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Run deadline in seconds, 0 to wait forever (overrides FLEETCMD_TIMEOUT)",
    )
    polling.add_argument(
        "--target-timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Per-target timeout in seconds, 0 to disable (overrides FLEETCMD_TARGET_TIMEOUT)",
    )
    polling.add_argument(
        "--max-connections",
        type=int,
        default=None,
        help="AWS connection pool size (overrides FLEETCMD_MAX_CONNECTIONS)",
    )

    extension = parser.add_argument_group("output extension")
    extension.add_argument(
        "--extend-output",
        action="store_true",
        default=None,
        help="Fetch truncated output from S3 (overrides FLEETCMD_EXTEND_OUTPUT)",
    )
    extension.add_argument(
        "--s3-bucket",
        default=None,
        help="Bucket the command writes its full output to (overrides FLEETCMD_S3_BUCKET)",
    )
    extension.add_argument(
        "--s3-key-prefix",
        default=None,
        help="Key prefix for the full output (overrides FLEETCMD_S3_KEY_PREFIX)",
    )

    parser.add_argument(
        "--document",
        default=None,
        help="Document used to run the command (overrides FLEETCMD_DOCUMENT)",
    )

    parser.add_argument(
        "--region",
        default=None,
        help="AWS region (overrides FLEETCMD_REGION)",
    )

    parser.add_argument(
        "--profile",
        default=None,
        help="AWS named profile (overrides FLEETCMD_PROFILE)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides FLEETCMD_LOG_LEVEL)",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )

    return parser.parse_args(args)


__all__ = ["parse_args"]
