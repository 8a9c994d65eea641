"""
Kiro Gateway - Main API Server

FastAPI server exposing Kiro through OpenAI-compatible endpoints.

Features:
- Chat completions, streaming and non-streaming, with tool calling
- Credentials from kiro-cli with automatic token refresh
- Prometheus metrics, structured logging and OpenTelemetry tracing
"""

import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .adapters.base import BaseAdapter
from .adapters.kiro_adapter import KiroAdapter
from .api import chat_router, models_router, set_adapter_getter, set_settings_getter
from .api.dependencies import get_adapter
from .auth.manager import KiroAuthManager
from .core.config import GatewaySettings, load_settings
from .core.errors import GatewayException
from .core.http_client import RetryConfig
from .observability import (
    get_logger,
    metrics_endpoint,
    setup_logging,
    setup_metrics,
    setup_tracing,
    trace_context_middleware,
)

logger = get_logger("kiro_gateway.server")


# ============================================================
# Global state
# ============================================================

adapter_instance: Optional[BaseAdapter] = None
settings_instance: Optional[GatewaySettings] = None

set_adapter_getter(lambda: adapter_instance)
set_settings_getter(lambda: settings_instance)


def build_adapter(settings: GatewaySettings) -> KiroAdapter:
    """Create the Kiro adapter described by the settings."""
    auth = KiroAuthManager(
        region=settings.region,
        db_path=settings.db_path,
        refresh_token=settings.refresh_token,
        profile_arn=settings.profile_arn,
    )
    return KiroAdapter(
        auth,
        idle_timeout=settings.idle_timeout,
        retry_config=RetryConfig(max_retries=settings.max_retries),
        timeout=settings.request_timeout,
    )


def create_app(
    settings: Optional[GatewaySettings] = None,
    adapter: Optional[BaseAdapter] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use instead of the environment
        adapter: Adapter to serve instead of one built from settings
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan - startup and shutdown."""
        global adapter_instance, settings_instance

        settings_instance = settings or load_settings()
        setup_logging(
            level=settings_instance.log_level,
            json_output=settings_instance.log_format == "json",
        )
        setup_metrics()
        tracing = setup_tracing(
            otlp_endpoint=settings_instance.otlp_endpoint,
            console_export=settings_instance.otel_console_export,
        )

        adapter_instance = adapter or build_adapter(settings_instance)

        auth = getattr(adapter_instance, "auth", None)
        if auth is not None and not auth.has_credentials:
            logger.warning(
                "No Kiro credentials found. Log in with kiro-cli or set KIRO_REFRESH_TOKEN"
            )

        logger.info(
            "Kiro Gateway ready",
            version=__version__,
            region=settings_instance.region,
            gateway_key_required=bool(settings_instance.gateway_api_key),
        )

        yield

        await adapter_instance.close()
        adapter_instance = None
        tracing.shutdown()
        logger.info("Kiro Gateway stopped")

    app = FastAPI(
        title="Kiro Gateway",
        description="OpenAI-compatible API for Kiro",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(trace_context_middleware)

    app.include_router(chat_router)
    app.include_router(models_router)

    app.add_api_route("/health", health_check, methods=["GET"])
    app.add_api_route("/metrics", prometheus_metrics, methods=["GET"])

    app.add_exception_handler(GatewayException, gateway_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    return app


# ============================================================
# Core Endpoints (not in routes)
# ============================================================

async def health_check():
    """Health check endpoint."""
    adapter = get_adapter()
    health = await adapter.health_check()
    auth = getattr(adapter, "auth", None)

    result = {
        "status": "healthy" if health.is_healthy else "degraded",
        "version": __version__,
        "region": auth.region if auth is not None else None,
        "has_credentials": auth.has_credentials if auth is not None else False,
    }
    if health.last_error:
        result["error"] = health.last_error
    return result


async def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Exposes all collected metrics in Prometheus text format.
    """
    return metrics_endpoint()


# ============================================================
# Error handlers
# ============================================================

async def gateway_exception_handler(request: Request, exc: GatewayException):
    """Handle all gateway errors."""
    headers = {
        "X-Request-Id": exc.error.request_id,
        "X-Error-Type": exc.error.type.value,
        "X-Error-Code": exc.error.code,
    }

    if exc.error.retry_after:
        headers["Retry-After"] = str(exc.error.retry_after)

    if exc.error.provider:
        headers["X-Provider"] = exc.error.provider

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.error.to_dict(),
        headers=headers
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle standard HTTP exceptions."""
    request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:24]}"
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": "http_error",
                "message": message,
                "type": "semantic_error" if exc.status_code < 500 else "infra_error",
                "request_id": request_id,
                "retryable": exc.status_code >= 500
            }
        },
        headers={"X-Request-Id": request_id}
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:24]}"
    logger.exception("Unhandled error", request_id=request_id, path=request.url.path)

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_error",
                "message": "An unexpected error occurred",
                "type": "infra_error",
                "request_id": request_id,
                "retryable": True
            }
        },
        headers={"X-Request-Id": request_id}
    )


app = create_app()


# ============================================================
# Run server
# ============================================================

if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "kiro_gateway.server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
