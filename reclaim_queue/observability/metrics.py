"""
Prometheus metrics for monitoring reclaim queues.

Defines and exposes metrics for:
- Message flow (enqueued, dequeued, acknowledged, rejected)
- Reclaim activity (requeued entries, scan latency, lost races)
- Queue depth (available and processing lists)

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from reclaim_queue.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for scan latency histograms (in seconds)
LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)


class MetricsCollector:
    """
    Prometheus metrics collector for reclaim queues.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.messages_enqueued.labels(queue="jobs").inc()
        metrics.reclaim_scan_latency.labels(queue="jobs").observe(0.004)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Message flow counters
        self.messages_enqueued = Counter(
            "reclaim_queue_messages_enqueued_total",
            "Total number of messages pushed to the available list",
            ["queue"],
        )

        self.messages_dequeued = Counter(
            "reclaim_queue_messages_dequeued_total",
            "Total number of messages claimed by consumers",
            ["queue"],
        )

        self.messages_acked = Counter(
            "reclaim_queue_messages_acked_total",
            "Total number of messages acknowledged",
            ["queue"],
        )

        self.stale_acks = Counter(
            "reclaim_queue_stale_acks_total",
            "Acknowledgments for messages no longer in the processing list",
            ["queue"],
        )

        self.messages_rejected = Counter(
            "reclaim_queue_messages_rejected_total",
            "Total number of messages rejected",
            ["queue"],
        )

        self.empty_polls = Counter(
            "reclaim_queue_empty_polls_total",
            "Total dequeue calls that timed out without a message",
            ["queue"],
        )

        # Reclaim counters
        self.messages_reclaimed = Counter(
            "reclaim_queue_messages_reclaimed_total",
            "Total number of expired claims returned to the available list",
            ["queue"],
        )

        self.reclaim_conflicts = Counter(
            "reclaim_queue_reclaim_conflicts_total",
            "Requeue transactions aborted because the processing list changed",
            ["queue"],
        )

        self.reclaim_scan_latency = Histogram(
            "reclaim_queue_reclaim_scan_latency_seconds",
            "Time to scan the processing list for expired claims",
            ["queue"],
            buckets=LATENCY_BUCKETS,
        )

        # Depth gauges
        self.available_depth = Gauge(
            "reclaim_queue_available_depth",
            "Number of messages in the available list",
            ["queue"],
        )

        self.processing_depth = Gauge(
            "reclaim_queue_processing_depth",
            "Number of messages in the processing list",
            ["queue"],
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    def record_scan(self, queue: str, latency: float, processing: int, reclaimed: int) -> None:
        """
        Record the outcome of one reclaim scan.

        Args:
            queue: Queue name
            latency: Scan duration in seconds
            processing: Size of the processing list when the scan started
            reclaimed: Number of entries returned to the available list
        """
        self.reclaim_scan_latency.labels(queue=queue).observe(latency)
        self.processing_depth.labels(queue=queue).set(processing - reclaimed)
        if reclaimed:
            self.messages_reclaimed.labels(queue=queue).inc(reclaimed)

    def set_depths(self, queue: str, available: int, processing: int) -> None:
        """Set both depth gauges for a queue."""
        self.available_depth.labels(queue=queue).set(available)
        self.processing_depth.labels(queue=queue).set(processing)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
