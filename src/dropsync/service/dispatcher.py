"""
Bounded hand-off of staged files to the consumer.

One producer (the poller) and one worker task. ``put`` waits while the
queue is full, which is the backpressure path; nothing is ever dropped.
Stopping wakes a producer still waiting for space, so shutdown stays
bounded even when the consumer never returns.
"""

from __future__ import annotations

import asyncio
from typing import Any

from dropsync.exceptions import ConsumerError, DispatcherClosedError
from dropsync.observability.metrics import MetricsRegistry
from dropsync.observability.structured_logging import log_invalid_delivery
from dropsync.service.handlers import HandlerLike, is_async_handler, resolve_handler
from dropsync.sync.types import StagedFile
from dropsync.utils.logging import get_logger

logger = get_logger("dropsync.dispatch")


class Dispatcher:
    """
    FIFO delivery of StagedFile messages to a single consumer handler.

    A message counts as delivered once the handler returns or raises;
    handler failures are logged and never retried here.
    """

    def __init__(self, handler: HandlerLike, capacity: int = 0, metrics: MetricsRegistry | None = None):
        if capacity < 0:
            raise ValueError(f"Dispatcher capacity must be >= 0, got {capacity}")
        self._handle = resolve_handler(handler)
        self._is_async = is_async_handler(self._handle)
        self.capacity = capacity
        self.metrics = metrics
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._worker: asyncio.Task | None = None
        self._current: Any = None
        self._blocked: dict[asyncio.Future, Any] = {}
        self._closed = False

        self.delivered = 0
        self.failed = 0
        self.invalid = 0

    @property
    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._run(), name="dropsync-dispatcher")

    async def put(self, message: StagedFile) -> None:
        """
        Enqueue a message, waiting for space when the queue is full.

        Raises:
            DispatcherClosedError: the dispatcher is stopped, or was stopped
                while this call waited for space; the message was not enqueued
        """
        if self._closed:
            raise DispatcherClosedError(f"Dispatcher is stopped, cannot deliver {message!r}")
        waiter = asyncio.ensure_future(self._queue.put(message))
        self._blocked[waiter] = message
        try:
            await asyncio.wait({waiter})
        except asyncio.CancelledError:
            waiter.cancel()
            raise
        finally:
            self._blocked.pop(waiter, None)
        if waiter.cancelled():
            raise DispatcherClosedError(f"Dispatcher stopped before {message!r} could be enqueued")
        self._record_depth()

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            self._current = message
            self._record_depth()
            try:
                await self._deliver(message)
            finally:
                self._current = None
                self._queue.task_done()

    async def _deliver(self, message: Any) -> None:
        if not isinstance(message, StagedFile) or not message.path.is_file():
            self.invalid += 1
            log_invalid_delivery(message)
            self._record("invalid")
            return

        try:
            if self._is_async:
                await self._handle(message)
            else:
                await asyncio.to_thread(self._handle, message)
        except Exception as e:
            self.failed += 1
            error = ConsumerError(message.original_name, cause=e)
            logger.error(error.message, exc_info=e)
            self._record("failed")
            return

        self.delivered += 1
        self._record("delivered")

    async def stop(self, timeout: float = 30.0) -> list[Any]:
        """
        Stop accepting messages and drain the queue.

        Waits up to ``timeout`` seconds for queued messages, and for producers
        already blocked in ``put``, to be handled. When the timeout expires
        the blocked producers are woken with DispatcherClosedError and keep
        ownership of their message; whatever is still queued, or still
        inside the handler, is returned (and logged) as undelivered.
        """
        self._closed = True
        undelivered: list[Any] = []

        if self._worker is not None:
            try:
                await asyncio.wait_for(self._drain(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Dispatcher drain timed out after {timeout}s")

        if self._blocked:
            waiters = list(self._blocked)
            names = [getattr(m, "original_name", repr(m)) for m in self._blocked.values()]
            logger.warning(f"Waking {len(waiters)} producer(s) blocked on a full queue: {names}")
            for waiter in waiters:
                waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if self._worker is not None:
            if self._current is not None:
                undelivered.append(self._current)
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

        while not self._queue.empty():
            undelivered.append(self._queue.get_nowait())
            self._queue.task_done()
        self._record_depth()

        if undelivered:
            names = [getattr(m, "original_name", repr(m)) for m in undelivered]
            logger.error(f"{len(undelivered)} staged file(s) left undelivered at shutdown: {names}")
        return undelivered

    async def _drain(self) -> None:
        while True:
            await self._queue.join()
            if not self._blocked:
                return
            await asyncio.wait(set(self._blocked))

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_dispatch(outcome)

    def _record_depth(self) -> None:
        if self.metrics is not None:
            self.metrics.record_queue_depth(self._queue.qsize())
