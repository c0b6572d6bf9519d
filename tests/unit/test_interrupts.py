"""Tests for interrupt sources.

No real process signals are sent; ``handle_signal`` is called directly.
"""

from __future__ import annotations

import signal

from fleetcmd.interrupts import InterruptSource, SignalInterruptSource


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestInterruptSource:
    """Tests for debounced delivery."""

    def test_notify_calls_subscribers(self) -> None:
        source = InterruptSource(debounce_seconds=0.0)
        calls: list[str] = []
        source.subscribe(lambda: calls.append("a"))
        source.subscribe(lambda: calls.append("b"))

        assert source.notify()
        assert calls == ["a", "b"]
        assert source.delivered == 1

    def test_burst_inside_window_is_collapsed(self) -> None:
        clock = FakeClock()
        source = InterruptSource(debounce_seconds=0.05, clock=clock)
        calls: list[int] = []
        source.subscribe(lambda: calls.append(1))

        assert source.notify()
        clock.now += 0.01
        assert not source.notify()
        clock.now += 0.01
        assert not source.notify()

        assert calls == [1]
        assert source.delivered == 1

    def test_interrupt_after_window_is_delivered(self) -> None:
        clock = FakeClock()
        source = InterruptSource(debounce_seconds=0.05, clock=clock)

        source.notify()
        clock.now += 0.06

        assert source.notify()
        assert source.delivered == 2

    def test_window_is_measured_from_last_delivery(self) -> None:
        clock = FakeClock()
        source = InterruptSource(debounce_seconds=0.05, clock=clock)

        source.notify()
        clock.now += 0.04
        source.notify()
        clock.now += 0.02

        assert source.notify()

    def test_unsubscribe(self) -> None:
        source = InterruptSource(debounce_seconds=0.0)
        calls: list[int] = []

        def callback() -> None:
            calls.append(1)

        source.subscribe(callback)
        source.unsubscribe(callback)
        source.unsubscribe(callback)
        source.notify()

        assert calls == []


class TestSignalInterruptSource:
    """Tests for the signal-fed source."""

    def test_handle_signal_notifies(self) -> None:
        source = SignalInterruptSource(debounce_seconds=0.0)
        calls: list[int] = []
        source.subscribe(lambda: calls.append(1))

        source.handle_signal(signal.SIGINT, None)

        assert calls == [1]

    def test_context_manager_installs_and_restores_handlers(self) -> None:
        previous = signal.getsignal(signal.SIGINT)

        with SignalInterruptSource(signals=(signal.SIGINT,)) as source:
            assert signal.getsignal(signal.SIGINT) == source.handle_signal

        assert signal.getsignal(signal.SIGINT) == previous
