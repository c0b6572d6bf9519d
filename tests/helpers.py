"""Test helper functions for fleetcmd tests.

This module provides utility functions for creating test fixtures and
driving runs. These helpers simplify test setup by providing sensible
defaults while allowing customization.

Usage
=====

Import and use helpers directly in tests::

    from tests.helpers import FAST_FREQUENCY, make_config, make_result, wait_until

    def test_example():
        config = make_config(timeout=5.0)
        result = make_result(target_id="i-1", output="ok")
        # ... use in test ...
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from fleetcmd.config import Config
from fleetcmd.results import Result, TargetError
from fleetcmd.types import ErrorKind, InvocationStatus

# Poll frequency used by tests, in seconds
FAST_FREQUENCY = 0.002


def make_config(**overrides: Any) -> Config:
    """Create a Config with test defaults (fast polling, short deadline)."""
    defaults: dict[str, Any] = {
        "poll_frequency_ms": 2,
        "timeout": 5.0,
        "interrupt_debounce_ms": 1,
    }
    defaults.update(overrides)
    return Config(**defaults)


def make_result(
    target_id: str = "i-0001",
    status: InvocationStatus = InvocationStatus.SUCCESS,
    output: str = "",
    error_kind: ErrorKind | None = None,
    error_message: str = "",
    **kwargs: Any,
) -> Result:
    """Create a Result, optionally with a TargetError of the given kind."""
    error = TargetError(error_kind, error_message) if error_kind is not None else None
    return Result(target_id=target_id, status=status, output=output, error=error, **kwargs)


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.002) -> bool:
    """Poll ``predicate`` until it returns True or ``timeout`` elapses.

    Returns:
        The last value of the predicate.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
