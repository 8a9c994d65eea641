"""
Kiro Gateway - API Dependencies

Shared dependencies for FastAPI routes.
"""

import hmac
import uuid
from typing import Dict, Optional

from fastapi import Depends, Header, Request

from ..adapters.base import BaseAdapter
from ..core.config import GatewaySettings
from ..core.errors import (
    ErrorDetails,
    ErrorType,
    InfraError,
    InvalidAPIKeyError,
    MissingAPIKeyError,
)


# Getters set by server.py to avoid circular imports
_adapter_getter = None
_settings_getter = None


def set_adapter_getter(getter):
    """Set the function that returns the adapter instance."""
    global _adapter_getter
    _adapter_getter = getter


def set_settings_getter(getter):
    """Set the function that returns the active settings."""
    global _settings_getter
    _settings_getter = getter


def get_request_id(request: Request) -> str:
    """Use the caller's X-Request-Id when given, else generate one."""
    request_id = request.headers.get("x-request-id")
    if not request_id:
        request_id = f"req_{uuid.uuid4().hex[:24]}"
    return request_id


def get_adapter() -> BaseAdapter:
    """
    Get the adapter instance.

    Raises 503 while the server is still starting up.
    """
    if _adapter_getter is None or _adapter_getter() is None:
        raise InfraError(
            ErrorDetails(
                code="service_unavailable",
                message="Adapter not initialized. Server may be starting up.",
                type=ErrorType.INFRA,
                request_id="",
                retryable=True,
                retry_after=5
            ),
            status_code=503
        )
    return _adapter_getter()


def get_settings() -> GatewaySettings:
    if _settings_getter is None or _settings_getter() is None:
        return GatewaySettings()
    return _settings_getter()


def _extract_key(authorization: Optional[str], x_api_key: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
        return authorization.strip()
    if x_api_key:
        return x_api_key.strip()
    return None


async def verify_api_key(
    request_id: str = Depends(get_request_id),
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
    settings: GatewaySettings = Depends(get_settings)
) -> str:
    """
    Check the caller's key against GATEWAY_API_KEY.

    Open access when no key is configured.

    Returns:
        The request ID, for handlers to reuse.
    """
    expected = settings.gateway_api_key
    if not expected:
        return request_id

    provided = _extract_key(authorization, x_api_key)
    if not provided:
        raise MissingAPIKeyError(request_id=request_id)
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise InvalidAPIKeyError(request_id=request_id)

    return request_id


def add_standard_headers(
    response_headers: Dict[str, str],
    request_id: str,
    **extra_headers
) -> Dict[str, str]:
    """Add request ID and any extra headers."""
    return {
        "X-Request-Id": request_id,
        **response_headers,
        **{k: str(v) for k, v in extra_headers.items() if v is not None}
    }
