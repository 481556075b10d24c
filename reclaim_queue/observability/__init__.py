"""Observability layer - logging and metrics."""

from reclaim_queue.observability.logging import setup_logging
from reclaim_queue.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
