"""Fixed-size worker pool for running conversion tasks (standard library).

Completed futures are delivered through a caller-owned queue, so the
coordinator can take whichever task finishes next without polling and
without caring about submission order.
"""
from __future__ import annotations

import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Hashable

from loguru import logger


DEFAULT_WORKERS = 4


class WorkerPool:
    """Thread pool reusable across batches; call `shutdown()` at teardown."""

    def __init__(self, max_workers: int = DEFAULT_WORKERS) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._exe = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bac-worker")
        self._max_workers = max_workers
        self._closed = threading.Event()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def submit_to(self, completions: "queue.Queue[tuple[Hashable, Future]]", key: Hashable, fn: Callable[[], Any]) -> Future:
        """Submit fn; push (key, future) onto `completions` once it finishes.

        The push happens for results and exceptions alike, so a consumer that
        takes exactly one item per submission never waits forever.
        """
        fut = self._exe.submit(fn)
        fut.add_done_callback(lambda f: completions.put((key, f)))
        return fut

    def shutdown(self, wait: bool = True) -> None:
        if not self._closed.is_set():
            logger.debug(f"worker pool shutdown (workers={self._max_workers})")
        self._closed.set()
        self._exe.shutdown(wait=wait)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()
