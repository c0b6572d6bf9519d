"""Interrupt notification sources for fleetcmd.

A run never binds to OS signals directly. It subscribes to an
``InterruptSource``, which delivers one notification per operator interrupt
after collapsing bursts (holding Ctrl+C sends several SIGINTs within a few
milliseconds) that arrive inside the debounce window.

- ``InterruptSource``: programmatic source; call ``notify()`` to interrupt.
- ``SignalInterruptSource``: the same source fed by SIGINT/SIGTERM.
"""

from __future__ import annotations

import signal
import threading
import time
import types
from collections.abc import Callable
from types import FrameType

from fleetcmd.logging import get_logger

logger = get_logger(__name__)

# Minimum spacing between two delivered interrupts (seconds)
DEFAULT_DEBOUNCE_SECONDS = 0.05


class InterruptSource:
    """Debounced fan-out of interrupt notifications to subscribers.

    Subscribers are plain callables invoked synchronously by ``notify()``;
    they must not block. When fed from a signal handler, subscribers run on the
    main thread between bytecodes, so they should only hand the event off
    (for example to a ``queue.SimpleQueue``).
    """

    def __init__(
        self,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the interrupt source.

        Args:
            debounce_seconds: Notifications closer than this to the previously
                delivered one are dropped.
            clock: Monotonic clock, injectable for tests.
        """
        self._debounce_seconds = debounce_seconds
        self._clock = clock
        self._last_delivered: float | None = None
        self._delivered = 0
        self._subscribers: list[Callable[[], None]] = []
        # Reentrant: a second signal may arrive while the first is being handled
        self._lock = threading.RLock()

    @property
    def delivered(self) -> int:
        """Number of interrupts delivered after debouncing."""
        return self._delivered

    def subscribe(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def notify(self) -> bool:
        """Deliver one interrupt unless it falls inside the debounce window.

        Returns:
            True if the interrupt was delivered to subscribers.
        """
        with self._lock:
            now = self._clock()
            if (
                self._last_delivered is not None
                and now - self._last_delivered < self._debounce_seconds
            ):
                logger.debug("Interrupt debounced")
                return False
            self._last_delivered = now
            self._delivered += 1
            subscribers = list(self._subscribers)

        for callback in subscribers:
            callback()
        return True


class SignalInterruptSource(InterruptSource):
    """Interrupt source fed by SIGINT (Ctrl+C) and SIGTERM.

    Usage::

        with SignalInterruptSource() as interrupts:
            stream = run_and_collect(..., interrupts=interrupts)

    The previous handlers are restored on exit.
    """

    def __init__(
        self,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
    ) -> None:
        super().__init__(debounce_seconds=debounce_seconds)
        self._signals = signals
        self._previous: dict[signal.Signals, object] = {}

    def handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """Handle an interrupt signal.

        Args:
            signum: The signal number received.
            frame: The current stack frame (unused).
        """
        logger.debug("Received %s", signal.Signals(signum).name)
        self.notify()

    def install_signal_handlers(self) -> None:
        """Route the configured signals to this source.

        Must be called from the main thread.
        """
        for sig in self._signals:
            self._previous[sig] = signal.signal(sig, self.handle_signal)
        logger.debug("Signal handlers installed for %s", ", ".join(s.name for s in self._signals))

    def restore_signal_handlers(self) -> None:
        """Restore the handlers that were active before installation."""
        for sig, previous in self._previous.items():
            signal.signal(sig, previous)  # type: ignore[arg-type]
        self._previous.clear()

    def __enter__(self) -> SignalInterruptSource:
        self.install_signal_handlers()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.restore_signal_handlers()


__all__ = [
    "DEFAULT_DEBOUNCE_SECONDS",
    "InterruptSource",
    "SignalInterruptSource",
]
