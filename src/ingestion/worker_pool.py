"""
Bounded worker pool for concurrent I/O tasks.

Runs a fixed number of consumer tasks over a shared queue of requests.
Every request gets one slot in the result and error lists, so output
index i always corresponds to input index i regardless of the order in
which requests complete.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class WorkerPoolError(Exception):
    """Raised when the pool as a whole fails; no partial results are returned."""

    pass


class WorkerPool(Generic[T, R]):
    """
    Fixed-concurrency executor for independent async tasks.

    A task raising an exception is a per-item failure and is recorded in
    the error list. A pool-level failure (the optional job timeout
    elapsing) aborts the whole call with WorkerPoolError.

    Example:
        pool = WorkerPool(workers=2)
        results, errors = await pool.run(requests, fetch_one)
        for request, result, error in zip(requests, results, errors):
            ...
    """

    def __init__(self, workers: int, timeout: float | None = None):
        """
        Initialize worker pool.

        Args:
            workers: Maximum number of requests in flight at any time.
            timeout: Optional deadline in seconds for the whole job.
        """
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.workers = workers
        self.timeout = timeout

    async def run(
        self,
        requests: Sequence[T],
        task: Callable[[T], Awaitable[R]],
    ) -> tuple[list[R | None], list[Exception | None]]:
        """
        Run task over every request with bounded concurrency.

        Args:
            requests: Ordered inputs.
            task: Coroutine function applied to each input.

        Returns:
            (results, errors) aligned with requests. Exactly one of
            results[i] / errors[i] is set for every i.

        Raises:
            WorkerPoolError: If the job timeout elapses
        """
        count = len(requests)
        results: list[R | None] = [None] * count
        errors: list[Exception | None] = [None] * count

        if count == 0:
            return results, errors

        queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
        for index, request in enumerate(requests):
            queue.put_nowait((index, request))

        async def consume() -> None:
            while True:
                try:
                    index, request = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    results[index] = await task(request)
                except Exception as e:
                    errors[index] = e

        worker_count = min(self.workers, count)
        logger.debug(f"Running {count} tasks with {worker_count} workers")

        consumers = [asyncio.create_task(consume()) for _ in range(worker_count)]
        try:
            await asyncio.wait_for(asyncio.gather(*consumers), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            remaining = queue.qsize()
            logger.error(
                f"Worker pool timed out after {self.timeout}s "
                f"with {remaining} tasks never started"
            )
            raise WorkerPoolError(
                f"Job did not complete within {self.timeout}s"
            ) from e
        finally:
            for consumer in consumers:
                if not consumer.done():
                    consumer.cancel()

        return results, errors
