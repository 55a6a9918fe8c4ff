"""
Fixed-interval driver for poll cycles.

A timer task ticks every ``poll_interval`` seconds. Each tick starts a
cycle unless one is still running, in which case the tick is dropped
rather than queued. The blocking cycle runs in a worker thread; its
staged files are then pushed onto the dispatcher in listing order before
the cycle counts as finished, so cycle N's dispatches precede cycle N+1's.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

from dropsync.exceptions import DispatcherClosedError, EscalationError, LocalIOError, ManifestError
from dropsync.observability.metrics import MetricsRegistry
from dropsync.observability.structured_logging import new_cycle_id
from dropsync.service.dispatcher import Dispatcher
from dropsync.sync.types import PollCycleResult, StagedFile
from dropsync.utils.logging import get_logger

logger = get_logger("dropsync.poller")

# Cycle errors that mean the local side is unusable; these count toward escalation.
LOCAL_FAILURES = (LocalIOError, ManifestError)


class PollerState(StrEnum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


class Poller:
    def __init__(
        self,
        run_cycle: Callable[[], PollCycleResult],
        dispatcher: Dispatcher,
        poll_interval: float,
        *,
        max_consecutive_failures: int = 5,
        metrics: MetricsRegistry | None = None,
    ):
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")
        self._run_cycle = run_cycle
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self.max_consecutive_failures = max_consecutive_failures
        self.metrics = metrics

        self._state = PollerState.IDLE
        self._ticker: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None
        self._transfer: asyncio.Future | None = None
        self._stopping = asyncio.Event()

        self.cycles_run = 0
        self.ticks_dropped = 0
        self.consecutive_failures = 0
        self.last_result: PollCycleResult | None = None
        self.fatal_error: EscalationError | None = None
        # Staged files the dispatcher refused because it was stopped first
        self.undelivered: list[StagedFile] = []

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._stopping.is_set()

    def start(self) -> None:
        """Start ticking; the first tick fires immediately."""
        if self._ticker is not None:
            return
        self._stopping.clear()
        self._ticker = asyncio.create_task(self._tick_loop(), name="dropsync-poller")
        logger.info(f"Poller started, interval {self.poll_interval}s")

    async def _tick_loop(self) -> None:
        while not self._stopping.is_set():
            self.spawn_cycle()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    def spawn_cycle(self) -> asyncio.Task | None:
        """
        Start a cycle in the background, subject to the single-flight guard.

        Returns the cycle task, or None if a cycle was already running.
        """
        if self._cycle_task is not None and not self._cycle_task.done():
            self.ticks_dropped += 1
            if self.metrics is not None:
                self.metrics.record_tick_dropped()
            logger.debug("Tick dropped: previous poll cycle still running")
            return None
        self._transfer = asyncio.ensure_future(asyncio.to_thread(self._run_cycle))
        self._cycle_task = asyncio.create_task(self._run_one_cycle(self._transfer), name="dropsync-cycle")
        return self._cycle_task

    async def trigger(self) -> PollCycleResult | None:
        """
        Run a cycle now, subject to the single-flight guard.

        Returns the cycle result, or None if a cycle was already running.
        """
        if self._stopping.is_set() and self._ticker is not None:
            return None
        task = self.spawn_cycle()
        if task is None:
            return None
        # Shield so cancelling the caller never aborts a transfer mid-way
        return await asyncio.shield(task)

    async def _run_one_cycle(self, transfer: asyncio.Future) -> PollCycleResult:
        self._state = PollerState.RUNNING
        try:
            try:
                result = await transfer
            except Exception as e:
                logger.exception(f"Unexpected error in poll cycle: {e}")
                now = datetime.now(UTC)
                result = PollCycleResult(cycle_id=new_cycle_id(), started_at=now, finished_at=now, error=e)

            self.cycles_run += 1
            self.last_result = result
            if self.metrics is not None:
                self.metrics.record_cycle(result)

            await self._dispatch(result)
            self._track_failures(result)
            return result
        finally:
            self._state = PollerState.STOPPED if self._stopping.is_set() else PollerState.IDLE

    async def _dispatch(self, result: PollCycleResult) -> None:
        for index, staged in enumerate(result.downloaded):
            try:
                await self.dispatcher.put(staged)
            except DispatcherClosedError:
                remaining = result.downloaded[index:]
                self.undelivered.extend(remaining)
                names = [s.original_name for s in remaining]
                logger.error(
                    f"Dispatcher stopped with {len(remaining)} staged file(s) of {result.cycle_id} not handed over: {names}"
                )
                return

    def _track_failures(self, result: PollCycleResult) -> None:
        if not isinstance(result.error, LOCAL_FAILURES):
            self.consecutive_failures = 0
            return

        self.consecutive_failures += 1
        limit = self.max_consecutive_failures
        if limit and self.consecutive_failures >= limit:
            self.fatal_error = EscalationError(self.consecutive_failures, result.error)
            logger.critical(self.fatal_error.message)
            self._stopping.set()

    async def wait(self) -> None:
        """
        Block until the poller stops.

        Raises:
            EscalationError: if it stopped because of repeated failures
        """
        await self._stopping.wait()
        if self.fatal_error is not None:
            raise self.fatal_error

    async def stop(self, dispatch_timeout: float | None = None) -> bool:
        """
        Stop scheduling new cycles and wait for the in-flight one.

        The running cycle is never cancelled. Its transfers always finish;
        handing its staged files to the dispatcher is waited on for at most
        ``dispatch_timeout`` seconds (forever when None).

        Returns:
            True once no cycle is running, False if the cycle is still
            blocked on a full dispatcher queue. Stop the dispatcher to
            release it, then call ``join``.
        """
        self._stopping.set()
        if self._ticker is not None:
            await asyncio.gather(self._ticker, return_exceptions=True)

        cycle = self._cycle_task
        if cycle is not None and not cycle.done():
            logger.info("Waiting for in-flight poll cycle to finish")
            if self._transfer is not None:
                await asyncio.wait({self._transfer})
            done, _ = await asyncio.wait({cycle}, timeout=dispatch_timeout)
            if not done:
                logger.warning(f"Poll cycle still handing files to the dispatcher after {dispatch_timeout}s")
                return False

        self._state = PollerState.STOPPED
        logger.info(f"Poller stopped after {self.cycles_run} cycle(s)")
        return True

    async def join(self) -> None:
        """Wait for the in-flight cycle, if any, to finish."""
        if self._cycle_task is not None:
            await asyncio.gather(self._cycle_task, return_exceptions=True)
        self._state = PollerState.STOPPED
