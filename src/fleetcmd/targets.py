"""Assembly of the target list from command-line flags and a target file."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from fleetcmd.logging import get_logger

logger = get_logger(__name__)


class TargetFileError(Exception):
    """Raised when a target file cannot be read."""

    pass


def read_target_file(path: str | Path) -> list[str]:
    """Read newline-separated target ids from a file.

    Blank lines and surrounding whitespace are ignored.

    Raises:
        TargetFileError: If the file cannot be read.
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise TargetFileError(f"Cannot read target file {path}: {e}") from e
    return [line.strip() for line in content.splitlines() if line.strip()]


def collect_targets(targets: Iterable[str] = (), target_file: str | Path | None = None) -> list[str]:
    """Combine explicit targets and the contents of a target file.

    Args:
        targets: Targets given directly, e.g. repeated ``--target`` flags.
        target_file: Optional file listing one target per line.

    Returns:
        Targets in first-seen order, without blanks or duplicates.
    """
    combined = [t.strip() for t in targets if t and t.strip()]
    if target_file:
        combined.extend(read_target_file(target_file))

    unique = list(dict.fromkeys(combined))
    if len(unique) != len(combined):
        logger.debug("Dropped %s duplicate target(s)", len(combined) - len(unique))
    return unique


__all__ = ["TargetFileError", "collect_targets", "read_target_file"]
