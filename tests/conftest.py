"""Shared pytest fixtures for fleetcmd tests.

Mocks live in ``tests.mocks`` and plain helpers in ``tests.helpers``; this
module only holds fixtures that need pytest's setup and teardown.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator

import pytest

from fleetcmd.interrupts import InterruptSource


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove every FLEETCMD_* variable so configuration tests see defaults."""
    for key in list(os.environ):
        if key.startswith("FLEETCMD_"):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def interrupts() -> InterruptSource:
    """An interrupt source without debouncing, driven by ``notify()``."""
    return InterruptSource(debounce_seconds=0.0)


@pytest.fixture
def restore_root_logger() -> Iterator[logging.Logger]:
    """Restore root logger handlers and level changed by ``setup_logging``."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
