"""
Kiro Gateway - API Server Tests

Exercises the FastAPI application with a KiroAdapter backed by a mocked
Kiro API:
- /health, /metrics and /v1/models
- Chat completions, streaming and non-streaming
- Gateway API key enforcement
- Error responses
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from kiro_gateway.adapters import BaseAdapter, KiroAdapter, ProviderHealth
from kiro_gateway.auth import KiroAuthManager
from kiro_gateway.core.config import MODEL_MAPPING, GatewaySettings
from kiro_gateway.core.http_client import KiroHttpClient, RetryConfig
from kiro_gateway.server import create_app

from conftest import encode_stream

NO_DELAY = RetryConfig(base_delay=0, min_delay=0, jitter_factor=0)

TOOL_STREAM = [
    {"content": "Checking."},
    {"name": "get_weather", "toolUseId": "t1"},
    {"input": "{\"city\":\"Paris\"}"},
    {"stop": True},
    {"usage": 1},
]


def stream_response(payloads):
    return lambda: httpx.Response(200, content=encode_stream(payloads))


def build_client(mock, api_key=None, raise_server_exceptions=True):
    transport = mock.transport()
    auth = KiroAuthManager(refresh_token="refresh-1", transport=transport)
    adapter = KiroAdapter(
        auth,
        http_client=KiroHttpClient(auth, retry_config=NO_DELAY, transport=transport),
        idle_timeout=5.0,
    )
    settings = GatewaySettings(gateway_api_key=api_key, log_format="text")
    app = create_app(settings=settings, adapter=adapter)
    return TestClient(app, raise_server_exceptions=raise_server_exceptions)


def chat_body(content="Hello", **extra):
    return {"model": "claude-sonnet-4", "messages": [{"role": "user", "content": content}], **extra}


@pytest.fixture
def text_mock(kiro_mock_factory):
    return kiro_mock_factory([stream_response([{"content": "Hi!"}, {"usage": 0.3}])])


# ============================================================
# Service Endpoints
# ============================================================

class TestServiceEndpoints:
    """Health, metrics and models."""

    def test_health(self, text_mock):
        with build_client(text_mock) as client:
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["region"] == "us-east-1"
        assert data["has_credentials"] is True
        assert "error" not in data

    def test_health_degraded(self, kiro_mock_factory):
        mock = kiro_mock_factory()
        mock.refresh_responses.append(httpx.Response(401, text="revoked"))

        with build_client(mock) as client:
            data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert "revoked" in data["error"]

    def test_metrics(self, text_mock):
        with build_client(text_mock) as client:
            client.post("/v1/chat/completions", json=chat_body())
            response = client.get("/metrics")

        assert response.status_code == 200
        assert "kiro_gateway_requests_total" in response.text

    def test_list_models(self, text_mock):
        with build_client(text_mock) as client:
            response = client.get("/v1/models")

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "list"
        assert [m["id"] for m in data["data"]] == list(MODEL_MAPPING)
        first = data["data"][0]
        assert first["object"] == "model"
        assert first["internal_id"] == MODEL_MAPPING[first["id"]]
        assert response.headers["x-request-id"].startswith("req_")

    def test_list_models_capability_filter(self, text_mock):
        with build_client(text_mock) as client:
            assert client.get("/v1/models?capability=tools").json()["data"]
            assert client.get("/v1/models?capability=vision").json()["data"] == []


# ============================================================
# Chat Completions
# ============================================================

class TestChatCompletions:
    """POST /v1/chat/completions."""

    def test_non_streaming(self, text_mock):
        with build_client(text_mock) as client:
            response = client.post(
                "/v1/chat/completions",
                json=chat_body(),
                headers={"X-Request-Id": "req_client"},
            )

        assert response.status_code == 200
        assert response.headers["x-request-id"] == "req_client"
        assert "x-latency-ms" in response.headers
        data = response.json()
        assert data["object"] == "chat.completion"
        assert data["choices"][0]["message"] == {"role": "assistant", "content": "Hi!"}
        assert data["choices"][0]["finish_reason"] == "stop"
        assert data["_kiro"]["usage"] == 0.3

    def test_non_streaming_tool_calls(self, kiro_mock_factory):
        mock = kiro_mock_factory([stream_response(TOOL_STREAM)])
        body = chat_body(
            "Weather?",
            tools=[{"type": "function", "function": {"name": "get_weather", "parameters": {"type": "object"}}}],
            tool_choice="auto",
        )

        with build_client(mock) as client:
            data = client.post("/v1/chat/completions", json=body).json()

        choice = data["choices"][0]
        assert choice["finish_reason"] == "tool_calls"
        assert choice["message"]["tool_calls"] == [{
            "id": "t1",
            "type": "function",
            "function": {"name": "get_weather", "arguments": '{"city":"Paris"}'},
        }]
        tools = mock.generate_body()["conversationState"]["currentMessage"]["userInputMessage"][
            "userInputMessageContext"]["tools"]
        assert tools[0]["toolSpecification"]["name"] == "get_weather"

    def test_streaming(self, kiro_mock_factory):
        mock = kiro_mock_factory([stream_response(TOOL_STREAM)])

        with build_client(mock) as client:
            response = client.post("/v1/chat/completions", json=chat_body(stream=True))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [line[len("data: "):] for line in response.text.split("\n\n") if line]
        assert events[-1] == "[DONE]"
        chunks = [json.loads(e) for e in events[:-1]]
        deltas = [c["choices"][0]["delta"] for c in chunks]
        assert deltas[0] == {"role": "assistant", "content": ""}
        assert deltas[1] == {"content": "Checking."}
        assert deltas[2]["tool_calls"][0]["id"] == "t1"
        assert chunks[-1]["choices"][0]["finish_reason"] == "tool_calls"

    def test_streaming_error_chunk(self, kiro_mock_factory):
        mock = kiro_mock_factory([lambda: httpx.Response(400, json={"message": "bad input"})])

        with build_client(mock) as client:
            response = client.post("/v1/chat/completions", json=chat_body(stream=True))

        events = [line[len("data: "):] for line in response.text.split("\n\n") if line]
        assert events[-1] == "[DONE]"
        error_chunk = json.loads(events[-2])
        assert error_chunk["error"]["code"] == "provider_invalid_request"
        assert error_chunk["choices"][0]["finish_reason"] == "error"

    def test_upstream_error_response(self, kiro_mock_factory):
        mock = kiro_mock_factory([lambda: httpx.Response(429, headers={"Retry-After": "3"})])

        with build_client(mock) as client:
            response = client.post("/v1/chat/completions", json=chat_body())

        assert response.status_code == 429
        assert response.headers["retry-after"] == "3"
        assert response.headers["x-error-code"] == "rate_limited"
        assert response.json()["error"]["type"] == "infra_error"

    @pytest.mark.parametrize("body", [
        {"model": "claude-sonnet-4", "messages": []},
        {"model": "", "messages": [{"role": "user", "content": "hi"}]},
        {"model": "claude-sonnet-4", "messages": [{"role": "system", "content": "only"}]},
        {"model": "claude-sonnet-4", "messages": [{"role": "tool", "content": "no id"}]},
        {"model": "claude-sonnet-4", "messages": [{"role": "user", "content": "hi"}], "temperature": 3},
    ])
    def test_validation_errors(self, text_mock, body):
        with build_client(text_mock) as client:
            response = client.post("/v1/chat/completions", json=body)

        assert response.status_code == 422
        assert text_mock.generate_calls == 0


# ============================================================
# API Key
# ============================================================

class TestApiKey:
    """GATEWAY_API_KEY enforcement."""

    def test_open_when_unset(self, text_mock):
        with build_client(text_mock) as client:
            assert client.get("/v1/models").status_code == 200

    def test_missing_key(self, text_mock):
        with build_client(text_mock, api_key="secret") as client:
            response = client.get("/v1/models")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "missing_api_key"

    def test_invalid_key(self, text_mock):
        with build_client(text_mock, api_key="secret") as client:
            response = client.get("/v1/models", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_api_key"

    @pytest.mark.parametrize("headers", [
        {"Authorization": "Bearer secret"},
        {"x-api-key": "secret"},
    ])
    def test_valid_key(self, text_mock, headers):
        with build_client(text_mock, api_key="secret") as client:
            response = client.post("/v1/chat/completions", json=chat_body(), headers=headers)

        assert response.status_code == 200

    def test_health_is_open(self, text_mock):
        with build_client(text_mock, api_key="secret") as client:
            assert client.get("/health").status_code == 200


# ============================================================
# Unexpected Errors
# ============================================================

class BrokenAdapter(BaseAdapter):
    provider = "kiro"

    async def chat_completion(self, request, request_id=""):
        raise RuntimeError("unexpected")

    async def chat_completion_stream(self, request, request_id=""):
        raise RuntimeError("unexpected")
        yield ""

    def list_models(self):
        return []

    async def health_check(self):
        return ProviderHealth(provider=self.provider, is_healthy=True)


class TestUnexpectedErrors:
    """Unhandled exceptions become structured errors."""

    def test_non_streaming(self):
        app = create_app(settings=GatewaySettings(log_format="text"), adapter=BrokenAdapter())

        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.post("/v1/chat/completions", json=chat_body())

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_error"

    def test_streaming(self):
        app = create_app(settings=GatewaySettings(log_format="text"), adapter=BrokenAdapter())

        with TestClient(app) as client:
            response = client.post("/v1/chat/completions", json=chat_body(stream=True))

        assert response.status_code == 200
        assert '"code": "stream_error"' in response.text
        assert response.text.endswith("data: [DONE]\n\n")
