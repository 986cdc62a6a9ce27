"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from ordered_consumer.observability.logging import bind_context, message_context, setup_logging
from ordered_consumer.observability.metrics import (
    MetricsCollector,
    get_metrics,
    serve_metrics,
    setup_metrics,
)
from ordered_consumer.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_logging",
    "bind_context",
    "message_context",
    "setup_metrics",
    "get_metrics",
    "serve_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
]
