"""
Kiro Gateway - Observability Module

- Prometheus metrics (Counter, Histogram)
- Structured JSON logging with context injection
- OpenTelemetry tracing with W3C trace context

Usage:
    from kiro_gateway.observability import setup_logging, setup_metrics, setup_tracing, get_logger

    setup_logging(level="INFO")
    setup_metrics()
    setup_tracing(otlp_endpoint="http://localhost:4318/v1/traces")

    logger = get_logger(__name__)
"""

from .logging import (
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TimedOperation,
    get_logger,
    setup_logging,
)
from .metrics import (
    MetricsCollector,
    get_metrics,
    metrics_endpoint,
    setup_metrics,
)
from .tracing import (
    span_ids,
    TracingManager,
    get_tracing_manager,
    setup_tracing,
    trace_context_middleware,
)

__all__ = [
    # Logging
    "JSONFormatter",
    "LogContext",
    "StructuredLogger",
    "TimedOperation",
    "get_logger",
    "setup_logging",
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "metrics_endpoint",
    "setup_metrics",
    # Tracing
    "span_ids",
    "TracingManager",
    "get_tracing_manager",
    "setup_tracing",
    "trace_context_middleware",
]
