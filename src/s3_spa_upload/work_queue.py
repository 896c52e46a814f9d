# src/s3_spa_upload/work_queue.py
"""
A bounded-concurrency work queue for asyncio.

Items are pulled from an `asyncio.Queue` by a fixed pool of worker tasks, so
no more than `concurrency` calls of the worker function are ever outstanding.
The queue itself holds at most `concurrency` waiting items, which makes
`submit` apply back-pressure to the producer.
"""

import asyncio
import logging
from types import TracebackType
from typing import (
    Awaitable,
    Callable,
    Generic,
    List,
    NoReturn,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BoundedWorkQueue(Generic[T, R]):
    """
    Runs an async worker function over submitted items with a concurrency cap.

    In fail-fast mode (the default) the first error stops the queue: items
    still waiting are skipped and further calls to `submit` raise that error.
    Calls already in flight are allowed to finish. Without fail-fast, every
    submitted item is processed and errors are reported by `drain`.

    Use as an async context manager. Leaving the context stops the workers;
    if an exception is propagating, waiting items are skipped first and
    running calls are allowed to finish.
    """

    def __init__(
        self,
        worker: Callable[[T], Awaitable[R]],
        concurrency: int,
        fail_fast: bool = True,
    ) -> None:
        """
        Initialize the work queue.

        Args:
            worker (Callable[[T], Awaitable[R]]): The coroutine function
                applied to each item.
            concurrency (int): Max number of concurrent worker calls.
            fail_fast (bool): Stop processing queued items after the first error.

        Raises:
            ValueError: If `concurrency` is lower than 1.
        """
        if concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {concurrency}.")
        self._worker: Callable[[T], Awaitable[R]] = worker
        self._concurrency: int = concurrency
        self._fail_fast: bool = fail_fast
        self._queue: asyncio.Queue[Tuple[T, asyncio.Future[R]]] = asyncio.Queue(
            maxsize=concurrency
        )
        self._tasks: List[asyncio.Task[None]] = []
        self._errors: List[Exception] = []
        self._unretrieved: List[asyncio.Future[R]] = []
        self._errors_logged: int = 1
        self._in_flight: int = 0
        self._peak_in_flight: int = 0
        self._stopping: bool = False

    @property
    def concurrency(self) -> int:
        """The maximum number of concurrent worker calls."""
        return self._concurrency

    @property
    def in_flight(self) -> int:
        """The number of worker calls currently running."""
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        """The highest number of simultaneous worker calls observed."""
        return self._peak_in_flight

    @property
    def errors(self) -> List[Exception]:
        """All errors raised by the worker so far, in order of occurrence."""
        return list(self._errors)

    async def __aenter__(self) -> "BoundedWorkQueue[T, R]":
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc_type is not None and issubclass(exc_type, Exception):
            # Skip whatever is still queued, but let running calls finish.
            self._stopping = True
            await self._queue.join()
        await self.close()

    def start(self) -> None:
        """Starts the worker tasks. Must be called from a running event loop."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._run_worker(i)) for i in range(self._concurrency)
        ]

    async def submit(self, item: T) -> "asyncio.Future[R]":
        """
        Enqueues an item, waiting while the backlog is full.

        Args:
            item (T): The item to pass to the worker function.

        Returns:
            asyncio.Future[R]: Resolves to the worker's result or error.

        Raises:
            RuntimeError: If the queue has not been started.
            Exception: In fail-fast mode, the first error raised by the worker.
        """
        if not self._tasks:
            raise RuntimeError("The work queue has not been started.")
        if self._fail_fast and self._errors:
            self._raise_first_error()
        future: asyncio.Future[R] = asyncio.get_running_loop().create_future()
        await self._queue.put((item, future))
        return future

    async def drain(self) -> None:
        """
        Waits until every submitted item has been processed.

        Raises:
            Exception: The first error raised by the worker, if any. Later
                errors are logged and remain available through `errors`.
        """
        await self._queue.join()
        if self._errors:
            self._raise_first_error()

    async def close(self) -> None:
        """Cancels the workers and any items still waiting in the queue."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            future.cancel()
            self._queue.task_done()
        self._mark_errors_retrieved()

    def _mark_errors_retrieved(self) -> None:
        # Failed futures nobody awaited would otherwise warn when collected.
        for future in self._unretrieved:
            future.exception()
        self._unretrieved.clear()

    def _raise_first_error(self) -> NoReturn:
        self._mark_errors_retrieved()
        for error in self._errors[self._errors_logged :]:
            logger.error(f"Additional failure: {error}")
        self._errors_logged = max(self._errors_logged, len(self._errors))
        raise self._errors[0]

    async def _run_worker(self, worker_id: int) -> None:
        """
        A long-lived task that processes items from the queue.

        Args:
            worker_id (int): A unique identifier for this worker.
        """
        while True:
            item, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                if self._stopping or (self._fail_fast and self._errors):
                    future.cancel()
                    continue

                self._in_flight += 1
                self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
                try:
                    result: R = await self._worker(item)
                except asyncio.CancelledError:
                    future.cancel()
                    raise
                except Exception as e:
                    self._errors.append(e)
                    if not future.done():
                        future.set_exception(e)
                        self._unretrieved.append(future)
                    logger.debug(f"Worker {worker_id} failed on {item!r}: {e}")
                else:
                    if not future.done():
                        future.set_result(result)
                finally:
                    self._in_flight -= 1
            finally:
                self._queue.task_done()
