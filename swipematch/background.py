"""
Background task queue for work that must stay off the swipe response path.

Tasks run on daemon worker threads. A failing task is logged, appended to a
bounded failure sink and dropped; it is never retried and never reaches the
code that submitted it.
"""

import queue
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Deque, List, Optional

from swipematch.utils import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class TaskFailure:
    name: str
    error: str
    failed_at: datetime


class BackgroundTaskQueue:
    """
    Fire-and-forget task queue backed by worker threads.

    Args:
        n_workers: Number of worker threads
        max_failures: Size of the failure sink (oldest entries are dropped)
        name: Prefix used for worker thread names
    """

    def __init__(self, n_workers: int = 1, max_failures: int = 1000, name: str = "swipematch-bg"):
        if n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")

        self._queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._failures: Deque[TaskFailure] = deque(maxlen=max_failures)
        self._failures_lock = threading.Lock()
        self._closed = False
        self._submit_lock = threading.Lock()
        self._workers: List[threading.Thread] = []

        for i in range(n_workers):
            worker = threading.Thread(target=self._run, name=f"{name}-{i}", daemon=True)
            worker.start()
            self._workers.append(worker)

        logger.debug(f"BackgroundTaskQueue started with {n_workers} worker(s)")

    def submit(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        """
        Enqueue a task.

        Args:
            name: Label used in logs and in the failure sink
            fn: Callable to run
            *args: Positional arguments for fn
            **kwargs: Keyword arguments for fn

        Returns:
            True if the task was queued, False if the queue is shut down
        """
        with self._submit_lock:
            if self._closed:
                logger.warning(f"Queue is shut down, dropping task '{name}'")
                return False
            self._queue.put((name, fn, args, kwargs))
        return True

    def join(self) -> None:
        """Block until every queued task has finished."""
        self._queue.join()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks and stop the workers once the queue drains."""
        with self._submit_lock:
            if self._closed:
                return
            self._closed = True
            # Stop signals go after every accepted task
            for _ in self._workers:
                self._queue.put(None)
        if wait:
            for worker in self._workers:
                worker.join()

    @property
    def failures(self) -> List[TaskFailure]:
        """Snapshot of the failure sink."""
        with self._failures_lock:
            return list(self._failures)

    def pending(self) -> int:
        return self._queue.unfinished_tasks

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                name, fn, args, kwargs = item
                try:
                    fn(*args, **kwargs)
                except Exception as e:
                    logger.warning(f"Background task '{name}' failed: {e}")
                    with self._failures_lock:
                        self._failures.append(
                            TaskFailure(name=name, error=repr(e), failed_at=datetime.now())
                        )
            finally:
                self._queue.task_done()

    def __enter__(self) -> 'BackgroundTaskQueue':
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
