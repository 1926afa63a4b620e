"""
Threading Module - Handles bounded thread pools for the scanners

Pool sizes exist to cap the number of sockets open at once, not to maximise
throughput. Submitting to a BoundedExecutor blocks the caller while every
slot is busy, which lets dispatch loops check their stop flag right before
each new unit of work is scheduled.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Set

logger = logging.getLogger(__name__)


class ConcurrencyGauge:
    """
    Counts how many tasks are inside a section at once and remembers the peak.
    Used as a context manager around the work being measured.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._lock = threading.Lock()
        self.current = 0
        self.peak = 0

    def __enter__(self):
        with self._lock:
            self.current += 1
            if self.current > self.peak:
                self.peak = self.current
        return self

    def __exit__(self, exc_type, exc, tb):
        with self._lock:
            self.current -= 1
        return False


class BoundedExecutor:
    """
    Thread pool with at most max_workers tasks admitted at a time.

    submit() blocks until a slot frees up (or the executor is stopped), so no
    unbounded backlog builds up in front of the workers.
    """

    def __init__(self, max_workers: int, name: str = "netsweep",
                 stop_event: Optional[threading.Event] = None,
                 slots: Optional[threading.Semaphore] = None):
        """
        Initialize the executor.

        Args:
            max_workers: Number of tasks allowed to run at once
            name: Thread name prefix, useful in logs
            stop_event: Shared flag that stops admission when set
            slots: Semaphore shared with other executors; tasks of all of
                them together never exceed its size
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.name = name
        self.stop_event = stop_event or threading.Event()
        self._slots = slots or threading.BoundedSemaphore(max_workers)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, func: Callable, *args, **kwargs) -> Optional[Future]:
        """
        Wait for a free slot and schedule func(*args, **kwargs).

        Returns:
            Optional[Future]: The scheduled future, or None if the executor
            was stopped before a slot became available
        """
        while not self._slots.acquire(timeout=0.05):
            if self.stop_event.is_set():
                return None
        if self.stop_event.is_set():
            self._slots.release()
            return None

        try:
            future = self._executor.submit(self._run, func, args, kwargs)
        except RuntimeError:
            # Executor already shut down
            self._slots.release()
            return None
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future):
        with self._lock:
            self._pending.discard(future)

    @property
    def outstanding(self) -> int:
        """Number of submitted tasks that have not finished yet."""
        with self._lock:
            return len(self._pending)

    def _run(self, func, args, kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in {self.name} task: {e}")
            return None
        finally:
            self._slots.release()

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted task has finished. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def stop(self):
        """Stop admitting new work. Tasks already running are left to finish."""
        self.stop_event.set()
        logger.debug(f"Stop signal sent to {self.name} pool")

    def shutdown(self, wait_for_tasks: bool = True):
        self._executor.shutdown(wait=wait_for_tasks)
