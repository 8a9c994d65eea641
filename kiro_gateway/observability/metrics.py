"""
Kiro Gateway - Prometheus Metrics

Metrics exposed:
- kiro_gateway_requests_total: Counter of requests by endpoint, model, status
- kiro_gateway_request_duration_seconds: Histogram of request latency
- kiro_gateway_time_to_first_token_seconds: Histogram of streaming TTFT
- kiro_gateway_upstream_retries_total: Counter of upstream retries by reason
- kiro_gateway_token_refresh_total: Counter of access token refreshes by outcome
- kiro_gateway_tool_calls_total: Counter of finalized tool calls
- kiro_gateway_placeholder_arguments_total: Counter of tool calls whose
  accumulated arguments could not be parsed and were replaced with "{}"

Usage:
    from kiro_gateway.observability.metrics import get_metrics, setup_metrics

    setup_metrics()
    get_metrics().record_request(endpoint="/v1/chat/completions", model="auto",
                                 status_code=200, duration_seconds=1.5)
"""

from typing import Dict, Optional

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class MetricsCollector:
    """Central metrics collector using the Prometheus client."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        self.requests_total = Counter(
            "kiro_gateway_requests_total",
            "Total number of requests",
            labelnames=["endpoint", "model", "status", "error_type", "streaming"],
            registry=registry,
        )

        # Model calls typically range from 0.5s to 60s+
        self.request_duration = Histogram(
            "kiro_gateway_request_duration_seconds",
            "Request duration in seconds",
            labelnames=["endpoint", "model", "streaming"],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, float("inf")),
            registry=registry,
        )

        self.time_to_first_token = Histogram(
            "kiro_gateway_time_to_first_token_seconds",
            "Time to first content event in streaming responses",
            labelnames=["model"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
            registry=registry,
        )

        self.upstream_retries = Counter(
            "kiro_gateway_upstream_retries_total",
            "Retries of the generateAssistantResponse call",
            labelnames=["reason"],
            registry=registry,
        )

        self.token_refreshes = Counter(
            "kiro_gateway_token_refresh_total",
            "Access token refresh attempts",
            labelnames=["outcome"],
            registry=registry,
        )

        self.tool_calls_total = Counter(
            "kiro_gateway_tool_calls_total",
            "Finalized tool calls returned to clients",
            labelnames=["model"],
            registry=registry,
        )

        self.placeholder_arguments = Counter(
            "kiro_gateway_placeholder_arguments_total",
            "Tool calls whose accumulated arguments were discarded",
            labelnames=["model"],
            registry=registry,
        )

    def record_request(
        self,
        endpoint: str,
        model: str,
        status_code: int,
        duration_seconds: float,
        error_type: Optional[str] = None,
        streaming: bool = False,
    ):
        """Record a completed request."""
        streaming_label = "true" if streaming else "false"

        self.requests_total.labels(
            endpoint=endpoint,
            model=model,
            status=str(status_code),
            error_type=error_type or "none",
            streaming=streaming_label,
        ).inc()

        self.request_duration.labels(
            endpoint=endpoint,
            model=model,
            streaming=streaming_label,
        ).observe(duration_seconds)

    def record_time_to_first_token(self, model: str, seconds: float):
        self.time_to_first_token.labels(model=model).observe(seconds)

    def record_upstream_retry(self, reason: str):
        self.upstream_retries.labels(reason=reason).inc()

    def record_token_refresh(self, success: bool):
        self.token_refreshes.labels(outcome="success" if success else "failure").inc()

    def record_tool_calls(self, model: str, total: int, placeholders: int = 0):
        """Record finalized tool calls and how many lost their arguments."""
        if total:
            self.tool_calls_total.labels(model=model).inc(total)
        if placeholders:
            self.placeholder_arguments.labels(model=model).inc(placeholders)


_metrics_instance: Optional[MetricsCollector] = None
_collectors: Dict[CollectorRegistry, MetricsCollector] = {}


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times - a registry gets one collector, reused
    when it becomes the active one again.
    """
    global _metrics_instance

    if registry not in _collectors:
        _collectors[registry] = MetricsCollector(registry)

    _metrics_instance = _collectors[registry]
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """Get the metrics collector, creating one on the default registry if needed."""
    if _metrics_instance is None:
        return setup_metrics()
    return _metrics_instance


def metrics_endpoint() -> Response:
    """Prometheus exposition of the active collector's registry."""
    content = generate_latest(get_metrics().registry)
    return Response(
        content=content,
        media_type=CONTENT_TYPE_LATEST,
    )
