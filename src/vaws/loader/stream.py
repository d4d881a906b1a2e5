"""Single-direction delivery pipe for incremental batches."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Generic, TypeVar

from ..common.logging import get_logger
from ..service.models import Batch

T = TypeVar("T")

logger = get_logger(__name__)

Producer = Callable[[Callable[[Batch[T]], Awaitable[bool]]], Awaitable[Any]]


@dataclass(frozen=True)
class _Done:
    error: BaseException | None = None


class BatchStream(Generic[T]):
    """Runs a producer in a background task and hands its batches to a consumer.

    The producer receives an ``on_batch`` coroutine that enqueues a batch and
    reports whether it should keep going. The queue is bounded: once
    ``buffer`` batches are waiting, the producer suspends until the consumer
    drains. Closing the stream cancels the producer and wakes any consumer
    still waiting in ``next_batch``, so neither side is left blocked forever.
    """

    def __init__(self, producer: Producer[T], buffer: int = 10, name: str = "stream"):
        self._producer = producer
        self._queue: asyncio.Queue[Batch[T] | _Done] = asyncio.Queue(maxsize=buffer)
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._finished = False
        self.name = name

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> "BatchStream[T]":
        """Start the producer task. Calling twice is a no-op."""
        if self._task is None and not self._closed:
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name=f"batch-stream:{self.name}"
            )
        return self

    async def _offer(self, batch: Batch[T]) -> bool:
        if self._closed:
            return False
        await self._queue.put(batch)
        return not self._closed

    async def _run(self) -> None:
        outcome = _Done()
        try:
            await self._producer(self._offer)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Batch stream producer failed", stream=self.name, error=str(e))
            outcome = _Done(error=e)
        if not self._closed:
            await self._queue.put(outcome)

    async def next_batch(self) -> Batch[T] | None:
        """Wait for the next batch.

        Returns:
            The next batch, or None once the producer has finished

        Raises:
            Exception: Whatever the producer raised, after earlier batches
        """
        if self._finished or self._closed:
            return None
        self.start()

        item = await self._queue.get()
        if isinstance(item, _Done):
            if self._closed:
                # Pass the wake-up on to any other waiting consumer.
                self._queue.put_nowait(item)
                return None
            self._finished = True
            if item.error is not None:
                raise item.error
            return None
        return item

    async def close(self) -> None:
        """Abandon the stream, cancelling the producer if still running."""
        if self._closed:
            return
        self._closed = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._wake_waiters()
        logger.debug("Batch stream closed", stream=self.name)

    def _wake_waiters(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_Done())

    def __aiter__(self) -> AsyncIterator[Batch[T]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Batch[T]]:
        while True:
            batch = await self.next_batch()
            if batch is None:
                return
            yield batch

    async def __aenter__(self) -> "BatchStream[T]":
        return self.start()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
