"""
Kiro Gateway - OpenTelemetry Tracing

Features:
- W3C trace context propagation (traceparent header)
- A server span per HTTP request
- A client span around each generateAssistantResponse call
- OTLP (HTTP) and console exporters

Usage:
    from kiro_gateway.observability.tracing import setup_tracing, get_tracing_manager

    setup_tracing(otlp_endpoint="http://localhost:4318/v1/traces")

    with get_tracing_manager().start_client_span("kiro.generate") as span:
        span.set_attribute("ai.model", "claude-sonnet-4")
"""

import uuid
from typing import Any, Dict, Optional, Tuple

from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.propagate import extract
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import Span, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import SpanKind, Status, StatusCode

from .. import __version__

SERVICE = "kiro-gateway"


def span_ids(span: Span) -> Tuple[str, str]:
    """Trace and span id of a span as W3C hex strings."""
    ctx = span.get_span_context()
    return format(ctx.trace_id, "032x"), format(ctx.span_id, "016x")


class TracingManager:
    """
    Owns the tracer provider and its exporters.

    Spans are only exported when an OTLP endpoint, console export or an
    explicit exporter is configured; otherwise they are created and dropped.
    """

    def __init__(
        self,
        service_name: str = SERVICE,
        service_version: str = __version__,
        otlp_endpoint: Optional[str] = None,
        console_export: bool = False,
        exporter: Optional[SpanExporter] = None,
    ):
        resource = Resource.create({
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
        })
        self.provider = TracerProvider(resource=resource)

        if otlp_endpoint:
            self.provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
        if console_export:
            self.provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        if exporter is not None:
            self.provider.add_span_processor(SimpleSpanProcessor(exporter))

        self.tracer = self.provider.get_tracer(service_name, service_version)
        self._closed = False

    def extract_context(self, headers: Dict[str, str]) -> Context:
        return extract({k.lower(): v for k, v in headers.items()})

    def start_server_span(
        self,
        name: str,
        headers: Dict[str, str],
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """Span for an incoming request, parented on its traceparent header."""
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.SERVER,
            attributes=attributes,
            context=self.extract_context(headers),
        )

    def start_client_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """Span for an outgoing upstream call."""
        return self.tracer.start_as_current_span(
            name,
            kind=SpanKind.CLIENT,
            attributes=attributes,
        )

    def shutdown(self):
        """Flush and close exporters. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.provider.shutdown()


_tracing_instance: Optional[TracingManager] = None


def setup_tracing(
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
    exporter: Optional[SpanExporter] = None,
) -> TracingManager:
    """
    Setup tracing, replacing any previous manager.

    Call once at application startup.
    """
    global _tracing_instance

    if _tracing_instance is not None:
        _tracing_instance.shutdown()

    _tracing_instance = TracingManager(
        otlp_endpoint=otlp_endpoint,
        console_export=console_export,
        exporter=exporter,
    )
    return _tracing_instance


def get_tracing_manager() -> TracingManager:
    """Get the tracing manager, creating a non-exporting one if needed."""
    global _tracing_instance
    if _tracing_instance is None:
        _tracing_instance = TracingManager()
    return _tracing_instance


async def trace_context_middleware(request, call_next):
    """
    Open a server span per request and return its ids as X-Trace-Id and
    X-Span-Id.

    Usage:
        app.middleware("http")(trace_context_middleware)
    """
    path = request.url.path
    request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:24]}"
    span_cm = get_tracing_manager().start_server_span(
        f"{request.method} {path}",
        dict(request.headers),
        attributes={
            "http.method": request.method,
            "http.route": path,
            "kiro_gateway.request_id": request_id,
        },
    )

    with span_cm as span:
        trace_id, span_id = span_ids(span)
        request.state.trace_id = trace_id

        # start_as_current_span records the exception and marks the span failed
        response = await call_next(request)

        status = response.status_code
        span.set_attribute("http.status_code", status)
        span.set_status(Status(StatusCode.ERROR, f"HTTP {status}") if status >= 400 else Status(StatusCode.OK))

    response.headers["X-Trace-Id"] = trace_id
    response.headers["X-Span-Id"] = span_id
    return response
