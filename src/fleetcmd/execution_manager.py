"""Thread pool lifecycle for poll tasks.

ExecutionManager is the only component that touches
``concurrent.futures.ThreadPoolExecutor``. The collector delegates to it for:

- ``start()`` / ``shutdown()`` : Thread pool lifecycle
- ``submit()`` : Running one poll task per target
- ``get_active_count()`` : Number of poll tasks still running, logged on shutdown
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from fleetcmd.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ExecutionManager:
    """Manages the thread pool running poll tasks.

    The collector sizes the pool to the number of targets, so every poll task
    has its own worker and a stuck target never delays another one.

    Thread Safety:
        All public methods that modify shared state use internal locks.
    """

    def __init__(self, max_workers: int, thread_name_prefix: str = "fleetcmd-poll-") -> None:
        """Initialize the execution manager.

        Args:
            max_workers: Number of worker threads, one per poll task.
            thread_name_prefix: Prefix for worker thread names.
        """
        self._max_workers = max(1, max_workers)
        self._thread_name_prefix = thread_name_prefix
        self._thread_pool: ThreadPoolExecutor | None = None
        self._futures: list[Future[Any]] = []
        self._futures_lock = threading.Lock()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def start(self) -> None:
        """Start the thread pool."""
        if self._thread_pool is not None:
            logger.warning("Thread pool already started")
            return

        self._thread_pool = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix=self._thread_name_prefix,
        )
        logger.debug(f"Started thread pool with {self._max_workers} workers")

    def shutdown(self, block: bool = True, cancel_futures: bool = False) -> None:
        """Shutdown the thread pool.

        Args:
            block: If True, wait for running futures to complete.
            cancel_futures: If True, cancel futures that have not started.
        """
        if self._thread_pool is None:
            return
        active = self.get_active_count()
        if active:
            logger.debug("Shutting down with %s poll task(s) still running", active)
        self._thread_pool.shutdown(wait=block, cancel_futures=cancel_futures)
        self._thread_pool = None
        logger.debug("Thread pool shutdown complete")

    def get_active_count(self) -> int:
        """Get the count of submitted futures that have not finished."""
        with self._futures_lock:
            return sum(1 for future in self._futures if not future.done())

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T] | None:
        """Submit a task to the thread pool.

        Args:
            fn: The callable to execute.
            *args: Positional arguments for the callable.
            **kwargs: Keyword arguments for the callable.

        Returns:
            The Future representing the execution, or None if the pool is not running.
        """
        if self._thread_pool is None:
            logger.warning("Cannot submit task: thread pool not running")
            return None

        future = self._thread_pool.submit(fn, *args, **kwargs)
        with self._futures_lock:
            self._futures.append(future)
        return future


__all__ = ["ExecutionManager"]
