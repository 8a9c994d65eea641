"""
Kiro Gateway - Pytest Configuration

Provides:
- Byte-exact event-stream frame encoding for parser and adapter tests
- A fresh metrics registry per test
- httpx MockTransport helpers for Kiro traffic
"""

import json
import struct
import zlib
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import pytest
from prometheus_client import CollectorRegistry

from kiro_gateway.observability.metrics import setup_metrics


# ============================================================
# Frame Encoding
# ============================================================

def encode_frame(payload: Any, headers: bytes = b"") -> bytes:
    """
    Encode one event-stream frame with real CRC32 checksums.

    ``payload`` may be raw bytes, text, or a JSON-serializable value.
    """
    if isinstance(payload, bytes):
        body = payload
    elif isinstance(payload, str):
        body = payload.encode("utf-8")
    else:
        body = json.dumps(payload).encode("utf-8")

    total_length = 12 + len(headers) + len(body) + 4
    prelude = struct.pack(">II", total_length, len(headers))
    prelude += struct.pack(">I", zlib.crc32(prelude) & 0xFFFFFFFF)
    message = prelude + headers + body
    return message + struct.pack(">I", zlib.crc32(message) & 0xFFFFFFFF)


def encode_stream(payloads: Iterable[Any]) -> bytes:
    return b"".join(encode_frame(p) for p in payloads)


def event_headers(event_type: str = "assistantResponseEvent") -> bytes:
    """Headers in AWS event-stream form; the decoder ignores them."""
    def header(name: str, value: str) -> bytes:
        name_bytes = name.encode()
        value_bytes = value.encode()
        return (
            struct.pack(">B", len(name_bytes)) + name_bytes
            + b"\x07" + struct.pack(">H", len(value_bytes)) + value_bytes
        )

    return (
        header(":event-type", event_type)
        + header(":content-type", "application/json")
        + header(":message-type", "event")
    )


@pytest.fixture
def frame():
    return encode_frame


@pytest.fixture
def stream():
    return encode_stream


# ============================================================
# Metrics
# ============================================================

@pytest.fixture(autouse=True)
def metrics():
    """Route metrics of each test into its own registry."""
    return setup_metrics(CollectorRegistry())


# ============================================================
# Mock Kiro Transport
# ============================================================

REFRESH_HOST = "prod.us-east-1.auth.desktop.kiro.dev"
API_HOST = "codewhisperer.us-east-1.amazonaws.com"


def refresh_response(access_token: str = "access-1", expires_in: int = 3600, **extra) -> httpx.Response:
    return httpx.Response(
        200,
        json={"accessToken": access_token, "expiresIn": expires_in, **extra},
    )


class KiroMock:
    """
    Routes requests for a MockTransport.

    Refresh calls get a token; generate calls are answered from a queue of
    responses or response factories. The last entry repeats, so it should
    be a factory when more calls than entries are expected.
    """

    def __init__(self, generate: Optional[List[Any]] = None):
        self.generate_responses = list(generate or [])
        self.refresh_responses: List[httpx.Response] = []
        self.requests: List[httpx.Request] = []
        self.refresh_calls = 0
        self.generate_calls = 0

    @property
    def generate_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == API_HOST]

    def generate_body(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.generate_requests[index].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == REFRESH_HOST:
            self.refresh_calls += 1
            if self.refresh_responses:
                return self.refresh_responses.pop(0)
            return refresh_response(f"access-{self.refresh_calls}")

        self.generate_calls += 1
        if len(self.generate_responses) > 1:
            item = self.generate_responses.pop(0)
        elif self.generate_responses:
            item = self.generate_responses[0]
        else:
            return httpx.Response(200, content=b"")
        return item() if callable(item) else item

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def kiro_mock_factory() -> Callable[..., KiroMock]:
    return KiroMock
