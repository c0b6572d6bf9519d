"""Tests for target list assembly."""

from __future__ import annotations

from pathlib import Path

import pytest

from fleetcmd.targets import TargetFileError, collect_targets, read_target_file


class TestReadTargetFile:
    """Tests for read_target_file."""

    def test_skips_blank_lines_and_whitespace(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.txt"
        path.write_text("i-1\n\n  i-2  \n\ni-3\n")

        assert read_target_file(path) == ["i-1", "i-2", "i-3"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(TargetFileError, match="Cannot read target file"):
            read_target_file(tmp_path / "nope.txt")


class TestCollectTargets:
    """Tests for collect_targets."""

    def test_flags_only(self) -> None:
        assert collect_targets(["i-1", "i-2"]) == ["i-1", "i-2"]

    def test_flags_then_file_without_duplicates(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.txt"
        path.write_text("i-2\ni-3\ni-1\n")

        assert collect_targets(["i-1", "i-2"], path) == ["i-1", "i-2", "i-3"]

    def test_blank_flags_are_ignored(self) -> None:
        assert collect_targets(["", "  ", "i-1"]) == ["i-1"]

    def test_nothing_given(self) -> None:
        assert collect_targets() == []
