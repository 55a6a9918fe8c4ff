"""
Observability module for dropsync.

Prometheus metrics and structured logging.
"""

from dropsync.observability.metrics import MetricsRegistry, get_metrics_registry
from dropsync.observability.structured_logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    add_correlation_id,
    get_correlation_id,
    new_cycle_id,
    setup_structured_logging,
)

__all__ = [
    # Metrics
    "MetricsRegistry",
    "get_metrics_registry",
    # Structured Logging
    "StructuredFormatter",
    "HumanReadableFormatter",
    "setup_structured_logging",
    "add_correlation_id",
    "get_correlation_id",
    "new_cycle_id",
]
