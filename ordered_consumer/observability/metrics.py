"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

from ordered_consumer.constants import (
    METRIC_LOCK_ACQUIRE,
    METRIC_LOCK_STORE_ERRORS,
    METRIC_MESSAGES_DISPATCHED,
    METRIC_PROCESSING_DURATION,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the consumer.

    Collects metrics for:
    - Dispatch outcomes (state and ack/nack decision)
    - Lock acquisitions and lock store errors
    - Processing duration
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.messages_dispatched = Counter(
            METRIC_MESSAGES_DISPATCHED,
            "Total number of messages dispatched",
            ["state", "decision"],
            registry=self._registry,
        )

        self.lock_acquire = Counter(
            METRIC_LOCK_ACQUIRE,
            "Total number of lock acquire attempts",
            ["result"],
            registry=self._registry,
        )

        self.lock_store_errors = Counter(
            METRIC_LOCK_STORE_ERRORS,
            "Total number of lock store calls that failed",
            ["operation"],
            registry=self._registry,
        )

        self.processing_duration = Histogram(
            METRIC_PROCESSING_DURATION,
            "Message processing duration in seconds",
            ["state"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
            registry=self._registry,
        )

    def record_dispatch(self, state: str, decision: str) -> None:
        """Record a dispatched message."""
        self.messages_dispatched.labels(state=state, decision=decision).inc()

    def record_lock_acquire(self, acquired: bool) -> None:
        """Record a lock acquire attempt."""
        self.lock_acquire.labels(result="granted" if acquired else "denied").inc()

    def record_lock_store_error(self, operation: str) -> None:
        """Record a failed lock store call."""
        self.lock_store_errors.labels(operation=operation).inc()

    def record_processing(self, state: str, duration_seconds: float) -> None:
        """Record how long a message spent in processing."""
        self.processing_duration.labels(state=state).observe(duration_seconds)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics


def serve_metrics(port: int) -> None:
    """Expose the default registry over HTTP on the given port."""
    start_http_server(port)
