"""
dropsync long-running service.

Wires settings into the remote client, synchronizer, dispatcher and
poller, and owns graceful shutdown: stop ticking, let the in-flight cycle
finish its transfers, then bound its hand-off and the dispatcher drain
by ``shutdown_timeout``.
"""

from __future__ import annotations

import asyncio
import signal

from dropsync.config.settings import SyncSettings
from dropsync.exceptions import DropsyncError, UndeliveredMessagesError
from dropsync.observability.metrics import MetricsRegistry, get_metrics_registry
from dropsync.remote.base import RemoteStoreClient
from dropsync.remote.sftp import SFTPStoreClient
from dropsync.service.dispatcher import Dispatcher
from dropsync.service.handlers import HandlerLike, LoggingConsumer
from dropsync.service.poller import Poller
from dropsync.sync.filters import FilenameFilter
from dropsync.sync.manifest import LocalManifest
from dropsync.sync.synchronizer import Synchronizer
from dropsync.sync.types import PollCycleResult
from dropsync.utils.logging import get_logger

logger = get_logger("dropsync.service")


class SyncService:
    def __init__(
        self,
        settings: SyncSettings,
        *,
        handler: HandlerLike | None = None,
        client: RemoteStoreClient | None = None,
        manifest: LocalManifest | None = None,
        metrics: MetricsRegistry | None = None,
    ):
        self.settings = settings
        self.metrics = metrics if metrics is not None else get_metrics_registry()
        self.metrics.enable()

        sync = settings.sync
        self.client = client if client is not None else SFTPStoreClient(settings.sftp)
        self.manifest = manifest if manifest is not None else LocalManifest(sync.manifest_path)
        self.synchronizer = Synchronizer(
            self.client,
            sync.remote_dir,
            sync.local_dir,
            FilenameFilter(sync.pattern),
            self.manifest,
            max_files_per_cycle=sync.max_files_per_cycle,
            chunk_size=sync.chunk_size,
            skip_existing_local=sync.skip_existing_local,
        )
        handler = handler if handler is not None else LoggingConsumer()
        self.dispatcher = Dispatcher(handler, settings.dispatch.capacity, metrics=self.metrics)
        self.poller = Poller(
            self.synchronizer.run_cycle,
            self.dispatcher,
            sync.poll_interval,
            max_consecutive_failures=settings.service.max_consecutive_failures,
            metrics=self.metrics,
        )
        self._shutdown = asyncio.Event()

    def request_shutdown(self) -> None:
        if not self._shutdown.is_set():
            logger.info("Shutdown requested")
            self._shutdown.set()

    async def run(self) -> None:
        """
        Run until shutdown is requested or the poller escalates.

        Raises:
            EscalationError: repeated local I/O failures stopped the poller
            UndeliveredMessagesError: the dispatcher could not drain in time
        """
        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Signal handler for {sig.name} not supported here")

        if self.settings.service.metrics_port:
            self.metrics.start_http_server(port=self.settings.service.metrics_port)

        sync = self.settings.sync
        logger.info(f"Polling {self.settings.sftp.host}:{sync.remote_dir} for '{sync.pattern}' into {sync.local_dir}")

        self.dispatcher.start()
        self.poller.start()
        shutdown_wait = asyncio.create_task(self._shutdown.wait())
        poller_wait = asyncio.create_task(self.poller.wait())
        try:
            await asyncio.wait({shutdown_wait, poller_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            shutdown_wait.cancel()
            undelivered = await self.shutdown()
            for sig in installed:
                loop.remove_signal_handler(sig)

        error: BaseException | None = None
        if poller_wait.done() and not poller_wait.cancelled():
            error = poller_wait.exception()
        else:
            poller_wait.cancel()
        if error is not None:
            raise error
        if undelivered:
            raise UndeliveredMessagesError(undelivered)

    async def shutdown(self) -> list:
        """
        Stop the poller, then drain the dispatcher; returns undelivered messages.

        The in-flight cycle's transfers always complete. Handing its files to
        the dispatcher and draining the dispatcher are each bounded by
        ``dispatch.shutdown_timeout``.
        """
        timeout = self.settings.dispatch.shutdown_timeout
        await self.poller.stop(dispatch_timeout=timeout)
        undelivered = await self.dispatcher.stop(timeout=timeout)
        await self.poller.join()
        undelivered.extend(self.poller.undelivered)
        self.poller.undelivered.clear()
        return undelivered

    async def run_once(self) -> PollCycleResult:
        """Run a single cycle and deliver its files before returning."""
        self.dispatcher.start()
        cycle = self.poller.spawn_cycle()
        if cycle is None:
            await self.dispatcher.stop(timeout=0)
            raise DropsyncError("A poll cycle is already running")
        undelivered = await self.shutdown()
        result = await cycle
        if undelivered:
            raise UndeliveredMessagesError(undelivered)
        return result


def run_service(settings: SyncSettings, handler: HandlerLike | None = None) -> None:
    """Blocking entry point used by the CLI."""
    asyncio.run(SyncService(settings, handler=handler).run())
