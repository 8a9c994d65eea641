"""
Kiro Gateway - Error Definitions

Error taxonomy with infra vs semantic classification.

Infra errors come from the upstream transport (timeouts, 5xx, throttling,
token refresh) and may be retried before any content reached the client.
Semantic errors mean the request or the local credentials must be fixed
first.

The event stream parser never raises; everything here belongs to the
transport, auth and API layers around it.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

PROVIDER = "kiro"


class ErrorType(str, Enum):
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"


_OPTIONAL_FIELDS = (
    "provider",
    "param",
    "provider_request_id",
    "retry_after",
    "partial_content",
    "details",
)


@dataclass
class ErrorDetails:
    """Body of an error response; empty optional fields are omitted."""
    code: str
    message: str
    type: ErrorType
    request_id: str = ""
    retryable: bool = False
    provider: Optional[str] = None
    param: Optional[str] = None
    provider_request_id: Optional[str] = None
    retry_after: Optional[int] = None
    partial_content: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }
        for name in _OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is not None and value != "" and value != {}:
                result[name] = value
        return {"error": result}


class GatewayException(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)


class InfraError(GatewayException):
    pass


class SemanticError(GatewayException):
    pass


def _kiro_infra(code: str, message: str, request_id: str = "", **extra) -> ErrorDetails:
    extra.setdefault("retryable", True)
    return ErrorDetails(code, message, ErrorType.INFRA, request_id=request_id, provider=PROVIDER, **extra)


def _semantic(code: str, message: str, request_id: str = "", **extra) -> ErrorDetails:
    return ErrorDetails(code, message, ErrorType.SEMANTIC, request_id=request_id, **extra)


# ============================================================
# Upstream Transport
# ============================================================

class ConnectionTimeoutError(InfraError):
    def __init__(self, request_id: str = ""):
        super().__init__(
            _kiro_infra("connection_timeout", "Failed to connect to the Kiro API within timeout",
                        request_id, retry_after=5),
            status_code=504
        )


class ReadTimeoutError(InfraError):
    def __init__(self, request_id: str = ""):
        super().__init__(
            _kiro_infra("read_timeout", "Kiro API did not respond within timeout",
                        request_id, retry_after=10),
            status_code=504
        )


class UpstreamError(InfraError):
    """
    Kiro answered with a server error or the connection failed.

    A Kiro 500 is reported to clients as 502; other statuses pass through.
    """

    CODES = {500: "upstream_500", 502: "upstream_502", 503: "upstream_503", 504: "upstream_504"}

    def __init__(
        self,
        status_code: int,
        message: str = "",
        request_id: str = "",
        provider_request_id: str = ""
    ):
        super().__init__(
            _kiro_infra(
                self.CODES.get(status_code, "upstream_error"),
                message or f"Kiro API returned error {status_code}",
                request_id,
                provider_request_id=provider_request_id or None,
                retry_after=30,
            ),
            status_code=502 if status_code == 500 else status_code
        )


class RateLimitedError(InfraError):
    def __init__(self, retry_after: int = 60, request_id: str = ""):
        super().__init__(
            _kiro_infra("rate_limited", f"Kiro rate limit exceeded. Retry after {retry_after} seconds.",
                        request_id, retry_after=retry_after),
            status_code=429
        )


class StreamInterruptedError(InfraError):
    """The upstream stream broke after text was already sent to the client."""

    def __init__(self, partial_content: str = "", request_id: str = ""):
        super().__init__(
            _kiro_infra("stream_interrupted", "Connection lost after receiving partial content",
                        request_id, retryable=False, partial_content=partial_content),
            status_code=502
        )


class TokenRefreshError(InfraError):
    def __init__(self, message: str, status: Optional[int] = None, request_id: str = ""):
        super().__init__(
            _kiro_infra("token_refresh_failed", message, request_id, retryable=False,
                        details={"refresh_status": status} if status is not None else {}),
            status_code=502
        )


# ============================================================
# Client and Credential Problems
# ============================================================

class InvalidAPIKeyError(SemanticError):
    def __init__(self, message: str = "Invalid API key", request_id: str = ""):
        super().__init__(_semantic("invalid_api_key", message, request_id), status_code=401)


class MissingAPIKeyError(SemanticError):
    def __init__(self, request_id: str = ""):
        super().__init__(
            _semantic("missing_api_key", "Authorization header required", request_id),
            status_code=401
        )


class MissingCredentialsError(SemanticError):
    """No Kiro refresh token in the settings or the kiro-cli database."""

    def __init__(self, request_id: str = ""):
        super().__init__(
            _semantic(
                "missing_credentials",
                "Kiro refresh token not found. Is Kiro CLI installed and logged in?",
                request_id,
                provider=PROVIDER,
            ),
            status_code=401
        )


class InvalidRequestError(SemanticError):
    def __init__(self, message: str, param: str = "", request_id: str = ""):
        super().__init__(
            _semantic("invalid_request", message, request_id, param=param or None),
            status_code=400
        )


# ============================================================
# Error Factory
# ============================================================

def _upstream_message(body: str) -> str:
    """Kiro error bodies are loosely structured; prefer a JSON message field."""
    try:
        parsed = json.loads(body) if body else None
    except ValueError:
        return body
    if isinstance(parsed, dict):
        return str(parsed.get("message") or parsed.get("Message") or body)
    return body


def create_error_from_kiro(
    status_code: int,
    body: str = "",
    request_id: str = "",
    provider_request_id: str = "",
    retry_after: Optional[int] = None
) -> GatewayException:
    """
    Map a failed generateAssistantResponse call to a gateway error.

    429 -> RateLimitedError, 5xx -> UpstreamError, 401/403 ->
    provider_auth_error (502, the gateway's credentials are at fault),
    any other 4xx -> provider_invalid_request (400).
    """
    message = _upstream_message(body)

    if status_code == 429:
        return RateLimitedError(
            retry_after=retry_after if retry_after is not None else 60,
            request_id=request_id
        )

    if status_code >= 500:
        return UpstreamError(
            status_code,
            message=f"Kiro API {status_code}: {message}" if message else "",
            request_id=request_id,
            provider_request_id=provider_request_id
        )

    common = dict(provider=PROVIDER, provider_request_id=provider_request_id or None)

    if status_code in (401, 403):
        return SemanticError(
            _semantic("provider_auth_error", f"Kiro API rejected credentials ({status_code}): {message}",
                      request_id, **common),
            status_code=502
        )

    return SemanticError(
        _semantic("provider_invalid_request", f"Kiro API error {status_code}: {message}",
                  request_id, details={"upstream_status": status_code}, **common),
        status_code=400
    )


def create_stream_error_chunk(error: GatewayException, partial_content: str = "") -> str:
    """
    Final SSE event for a stream that failed after the 200 was sent.

    The error body replaces the usual delta and is followed by [DONE].
    """
    if partial_content:
        error.error.partial_content = partial_content

    chunk = {
        "error": error.error.to_dict()["error"],
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": {}, "finish_reason": "error"}],
    }
    return f"data: {json.dumps(chunk)}\n\ndata: [DONE]\n\n"
