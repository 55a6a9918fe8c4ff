"""
Prometheus metrics for dropsync.

Poll cycle results and dispatcher outcomes are exported as counters; the
same numbers are kept internally so tests and the CLI can read them
without scraping.

Usage:
    from dropsync.observability import get_metrics_registry

    registry = get_metrics_registry()
    registry.enable()
    registry.start_http_server(port=9108)
"""

import threading
from typing import Any

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
    start_http_server,
)

from dropsync.utils.logging import get_logger

logger = get_logger("dropsync.observability.metrics")


class MetricsRegistry:
    """
    Central registry for all dropsync metrics.

    Each instance owns its own CollectorRegistry, so several registries can
    coexist (one per test) without duplicate-timeseries errors.
    """

    def __init__(self):
        self._enabled = False
        self._internal_metrics: dict[str, Any] = {
            "cycles": {},  # outcome -> count
            "files_attempted": 0,
            "files_downloaded": 0,
            "files_failed": 0,
            "files_skipped": 0,
            "ticks_dropped": 0,
            "dispatch": {},  # outcome -> count
            "queue_depth": 0,
        }
        self._lock = threading.Lock()
        self._registry = CollectorRegistry()
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self):
        self._cycles_counter = Counter(
            "dropsync_cycles_total",
            "Poll cycles run",
            ["outcome"],  # outcome: ok, partial, aborted
            registry=self._registry,
        )
        self._attempted_counter = Counter(
            "dropsync_files_attempted_total",
            "Remote files a cycle tried to download",
            registry=self._registry,
        )
        self._downloaded_counter = Counter(
            "dropsync_files_downloaded_total",
            "Remote files staged locally",
            registry=self._registry,
        )
        self._failed_counter = Counter(
            "dropsync_files_failed_total",
            "Remote files whose transfer failed",
            registry=self._registry,
        )
        self._skipped_counter = Counter(
            "dropsync_files_skipped_total",
            "Matching remote files already in the manifest",
            registry=self._registry,
        )
        self._ticks_dropped_counter = Counter(
            "dropsync_ticks_dropped_total",
            "Timer ticks dropped because a cycle was still running",
            registry=self._registry,
        )
        self._dispatch_counter = Counter(
            "dropsync_dispatch_total",
            "Staged file deliveries to the consumer",
            ["outcome"],  # outcome: delivered, failed, invalid
            registry=self._registry,
        )
        self._queue_depth_gauge = Gauge(
            "dropsync_dispatch_queue_depth",
            "Staged files waiting for the consumer",
            registry=self._registry,
        )

    def enable(self):
        """Enable metrics collection."""
        self._enabled = True
        logger.info("Metrics collection enabled")

    def disable(self):
        """Disable metrics collection."""
        self._enabled = False
        logger.info("Metrics collection disabled")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_cycle(self, result: Any) -> None:
        """
        Record a finished poll cycle.

        Args:
            result: PollCycleResult of the cycle
        """
        if not self._enabled:
            return

        if result.error is not None:
            outcome = "aborted"
        elif result.failed:
            outcome = "partial"
        else:
            outcome = "ok"

        with self._lock:
            cycles = self._internal_metrics["cycles"]
            cycles[outcome] = cycles.get(outcome, 0) + 1
            self._internal_metrics["files_attempted"] += result.attempted
            self._internal_metrics["files_downloaded"] += len(result.downloaded) - result.reused
            self._internal_metrics["files_failed"] += len(result.failed)
            self._internal_metrics["files_skipped"] += result.skipped

        self._cycles_counter.labels(outcome=outcome).inc()
        self._attempted_counter.inc(result.attempted)
        self._downloaded_counter.inc(len(result.downloaded) - result.reused)
        self._failed_counter.inc(len(result.failed))
        self._skipped_counter.inc(result.skipped)

    def record_tick_dropped(self) -> None:
        if not self._enabled:
            return

        with self._lock:
            self._internal_metrics["ticks_dropped"] += 1
        self._ticks_dropped_counter.inc()

    def record_dispatch(self, outcome: str) -> None:
        """
        Record one dispatcher delivery.

        Args:
            outcome: delivered, failed or invalid
        """
        if not self._enabled:
            return

        with self._lock:
            dispatch = self._internal_metrics["dispatch"]
            dispatch[outcome] = dispatch.get(outcome, 0) + 1
        self._dispatch_counter.labels(outcome=outcome).inc()

    def record_queue_depth(self, depth: int) -> None:
        if not self._enabled:
            return

        with self._lock:
            self._internal_metrics["queue_depth"] = depth
        self._queue_depth_gauge.set(depth)

    def get_metrics(self) -> dict[str, Any]:
        """Snapshot of the internally tracked metrics."""
        with self._lock:
            return {
                "cycles": dict(self._internal_metrics["cycles"]),
                "files_attempted": self._internal_metrics["files_attempted"],
                "files_downloaded": self._internal_metrics["files_downloaded"],
                "files_failed": self._internal_metrics["files_failed"],
                "files_skipped": self._internal_metrics["files_skipped"],
                "ticks_dropped": self._internal_metrics["ticks_dropped"],
                "dispatch": dict(self._internal_metrics["dispatch"]),
                "queue_depth": self._internal_metrics["queue_depth"],
            }

    def start_http_server(self, port: int = 9108, addr: str = ""):
        """
        Start HTTP server for Prometheus scraping.

        Args:
            port: Port to listen on
            addr: Address to bind to (empty string for all interfaces)
        """
        start_http_server(port=port, addr=addr, registry=self._registry)
        logger.info(f"Prometheus metrics server started on port {port}")

    def generate_prometheus_metrics(self) -> bytes:
        """Prometheus text exposition of this registry."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


_metrics_registry: MetricsRegistry | None = None


def get_metrics_registry() -> MetricsRegistry:
    """Get the process-wide metrics registry."""
    global _metrics_registry
    if _metrics_registry is None:
        _metrics_registry = MetricsRegistry()
    return _metrics_registry
