"""
Kiro Gateway - Observability Tests

Verifies structured logging and Prometheus metrics.
"""

import json
import logging

from prometheus_client import CollectorRegistry

from kiro_gateway.observability import (
    JSONFormatter,
    LogContext,
    MetricsCollector,
    TimedOperation,
    get_logger,
    get_metrics,
    metrics_endpoint,
    setup_metrics,
)


def make_record(msg="hello", **fields):
    record = logging.LogRecord("kiro_gateway.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in fields.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def teardown_method(self):
        LogContext.clear()

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record(region="us-east-1")))

        assert data["level"] == "INFO"
        assert data["logger"] == "kiro_gateway.test"
        assert data["message"] == "hello"
        assert data["region"] == "us-east-1"
        assert "timestamp" in data

    def test_sensitive_fields_are_redacted(self):
        record = make_record(access_token="abc", refresh_token="def", authorization="Bearer x", count=3)

        data = json.loads(JSONFormatter().format(record))

        assert data["access_token"] == "[REDACTED]"
        assert data["refresh_token"] == "[REDACTED]"
        assert data["authorization"] == "[REDACTED]"
        assert data["count"] == 3

    def test_redaction_can_be_disabled(self):
        data = json.loads(JSONFormatter(redact_sensitive=False).format(make_record(token="abc")))

        assert data["token"] == "abc"

    def test_context_is_injected(self):
        LogContext.set_current(LogContext(request_id="req_1", model="claude-sonnet-4"))

        data = json.loads(JSONFormatter().format(make_record()))

        assert data["request_id"] == "req_1"
        assert data["model"] == "claude-sonnet-4"

    def test_location(self):
        data = json.loads(JSONFormatter(include_location=True).format(make_record()))

        assert data["location"].startswith("test_observability.py:")


class TestStructuredLogger:
    """Keyword arguments become record fields."""

    def test_fields_reach_the_record(self, caplog):
        logger = get_logger("kiro_gateway.test.structured")

        with caplog.at_level(logging.INFO, logger="kiro_gateway.test.structured"):
            logger.info("Token refreshed", region="eu-west-1")

        record = caplog.records[-1]
        assert record.getMessage() == "Token refreshed"
        assert record.region == "eu-west-1"

    def test_context_to_dict(self):
        ctx = LogContext(request_id="req_1", extra={"attempt": 2})

        assert ctx.to_dict() == {"request_id": "req_1", "attempt": 2}

    def test_timed_operation(self, caplog):
        logger = get_logger("kiro_gateway.test.timed")

        with caplog.at_level(logging.DEBUG, logger="kiro_gateway.test.timed"):
            with TimedOperation("refresh", logger) as timer:
                pass

        assert timer.duration_ms is not None
        assert caplog.records[-1].getMessage() == "refresh completed"
        assert caplog.records[-1].operation == "refresh"


class TestMetrics:
    """Tests for MetricsCollector."""

    def test_record_request(self, metrics):
        metrics.record_request("/v1/chat/completions", "claude-sonnet-4", 200, 1.2, streaming=True)

        assert metrics.registry.get_sample_value("kiro_gateway_requests_total", {
            "endpoint": "/v1/chat/completions",
            "model": "claude-sonnet-4",
            "status": "200",
            "error_type": "none",
            "streaming": "true",
        }) == 1
        assert metrics.registry.get_sample_value("kiro_gateway_request_duration_seconds_count", {
            "endpoint": "/v1/chat/completions",
            "model": "claude-sonnet-4",
            "streaming": "true",
        }) == 1

    def test_record_tool_calls(self, metrics):
        metrics.record_tool_calls("m", total=3, placeholders=1)
        metrics.record_tool_calls("m", total=0)

        assert metrics.registry.get_sample_value("kiro_gateway_tool_calls_total", {"model": "m"}) == 3
        assert metrics.registry.get_sample_value("kiro_gateway_placeholder_arguments_total", {"model": "m"}) == 1

    def test_setup_reuses_collector_per_registry(self):
        registry = CollectorRegistry()

        first = setup_metrics(registry)
        second = setup_metrics(registry)

        assert first is second
        assert get_metrics() is first
        assert isinstance(first, MetricsCollector)

    def test_metrics_endpoint(self, metrics):
        metrics.record_upstream_retry("timeout")

        response = metrics_endpoint()

        assert b'kiro_gateway_upstream_retries_total{reason="timeout"} 1.0' in response.body
        assert response.media_type.startswith("text/plain")
