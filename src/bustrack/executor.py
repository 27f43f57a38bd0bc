"""Task submission for heavy work (table parsing, stop-on-shape projection)."""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class TaskExecutor:
    """
    Runs a unit of work and hands back an awaitable result.

    Implementations must be interchangeable: nothing may depend on where the
    work actually executes.
    """

    def submit(self, fn: Callable[..., Any], *args: Any) -> Awaitable[Any]:
        raise NotImplementedError

    def shutdown(self) -> None:
        """Release any worker resources."""


class InlineExecutor(TaskExecutor):
    """Runs work synchronously on the calling thread."""

    def submit(self, fn: Callable[..., Any], *args: Any) -> Awaitable[Any]:
        future = asyncio.get_running_loop().create_future()
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)
        return future


class ThreadPoolTaskExecutor(TaskExecutor):
    """Runs work on a thread pool via the event loop."""

    def __init__(self, max_workers: Optional[int] = None):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bustrack")

    def submit(self, fn: Callable[..., Any], *args: Any) -> Awaitable[Any]:
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._pool, functools.partial(fn, *args))

    def shutdown(self) -> None:
        self._pool.shutdown(wait=True)
        logger.debug("Thread pool executor shut down")


def make_executor(worker_threads: int = 0) -> TaskExecutor:
    """Inline executor for 0 threads, otherwise a pool of that size."""
    if worker_threads < 0:
        raise ValueError("worker_threads cannot be negative")
    if worker_threads == 0:
        return InlineExecutor()
    return ThreadPoolTaskExecutor(max_workers=worker_threads)
