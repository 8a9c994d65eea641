"""
Kiro Gateway - Upstream HTTP Client

HTTP client for the Kiro generateAssistantResponse endpoint with:
- Exponential backoff retry (1-2-4-8s with jitter)
- Forced token refresh on 403
- Request correlation (request_id logging, client trace span)
- Step-based logging for debugging
"""

import asyncio
import random
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..observability.logging import get_logger
from ..observability.metrics import get_metrics
from ..observability.tracing import get_tracing_manager
from .config import GENERATE_PATH, get_kiro_api_host
from .errors import (
    ConnectionTimeoutError,
    GatewayException,
    ReadTimeoutError,
    UpstreamError,
    create_error_from_kiro,
)
from .utils import get_kiro_headers

logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3  # total attempts
    base_delay: float = 1.0  # seconds
    max_delay: float = 8.0  # seconds
    exponential_base: float = 2.0
    jitter_factor: float = 0.25
    min_delay: float = 0.1
    retryable_status_codes: List[int] = field(
        default_factory=lambda: [429, 500, 502, 503, 504]
    )

    def is_retryable(self, status_code: int) -> bool:
        return status_code in self.retryable_status_codes or status_code >= 500


@dataclass
class RequestContext:
    """Context for tracking a request through the client."""
    request_id: str = field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")
    step_name: str = ""
    model: str = ""
    url: str = ""
    attempts: int = 0


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 8.0,
    exponential_base: float = 2.0,
    jitter_factor: float = 0.25,
    min_delay: float = 0.1
) -> float:
    """
    Calculate delay with exponential backoff and jitter.

    Sequence: 1s, 2s, 4s, 8s (with ±25% jitter)
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    jitter_range = delay * jitter_factor
    delay = delay + random.uniform(-jitter_range, jitter_range)

    return max(min_delay, delay)


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if value and value.strip().isdigit():
        return int(value.strip())
    return None


class KiroHttpClient:
    """
    Streaming client for generateAssistantResponse.

    Usage:
        async with client.stream_generate(payload, request_id) as response:
            async for chunk in response.aiter_bytes():
                ...
    """

    def __init__(
        self,
        auth,
        timeout: float = 120.0,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.auth = auth
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _log_request_start(self, ctx: RequestContext, attempt: int):
        logger.info(
            f"STEP [{ctx.step_name}] Starting POST {ctx.url}",
            request_id=ctx.request_id,
            model=ctx.model,
            attempt=attempt + 1,
        )

    def _log_retry(self, ctx: RequestContext, attempt: int, delay: float, error: str):
        logger.warning(
            f"STEP [{ctx.step_name}] Retry {attempt}/{self.retry_config.max_retries} "
            f"after {delay:.2f}s - Error: {error}",
            request_id=ctx.request_id,
        )

    def _log_response(self, ctx: RequestContext, status: int, latency_ms: float, attempt: int):
        logger.info(
            f"STEP [{ctx.step_name}] Response: status={status}, "
            f"latency={latency_ms:.0f}ms, retries={attempt}",
            request_id=ctx.request_id,
        )

    @asynccontextmanager
    async def stream_generate(
        self,
        payload: Dict[str, Any],
        request_id: Optional[str] = None,
        model: str = ""
    ) -> AsyncIterator[httpx.Response]:
        """
        Open a streaming generateAssistantResponse call.

        Yields:
            A 2xx response whose body has not been read yet

        Raises:
            RateLimitedError: 429 on every attempt
            UpstreamError: 5xx on every attempt, or connection failures
            ConnectionTimeoutError / ReadTimeoutError: Timeouts on every attempt
            SemanticError: 403 on every attempt, or any other 4xx
        """
        ctx = RequestContext(
            request_id=request_id or f"req_{uuid.uuid4().hex[:12]}",
            step_name="kiro_generate",
            model=model,
        )
        with get_tracing_manager().start_client_span(
            "kiro.generate_assistant_response",
            attributes={
                "ai.provider": "kiro",
                "ai.model": model,
                "kiro_gateway.request_id": ctx.request_id,
            },
        ) as span:
            try:
                response = await self._send_with_retry(payload, ctx)
            finally:
                span.set_attribute("kiro.attempts", ctx.attempts)
            span.set_attribute("http.status_code", response.status_code)

        try:
            yield response
        finally:
            await response.aclose()

    async def _send_with_retry(self, payload: Dict[str, Any], ctx: RequestContext) -> httpx.Response:
        client = self._get_client()
        config = self.retry_config
        attempts = max(1, config.max_retries)
        force_refresh = False
        last_error: Optional[GatewayException] = None

        for attempt in range(attempts):
            ctx.attempts = attempt + 1
            if force_refresh:
                token = await self.auth.force_refresh()
                force_refresh = False
            else:
                token = await self.auth.get_access_token()

            ctx.url = f"{get_kiro_api_host(self.auth.region)}{GENERATE_PATH}"
            request = client.build_request(
                "POST",
                ctx.url,
                json=payload,
                headers=get_kiro_headers(self.auth.fingerprint, token),
            )
            self._log_request_start(ctx, attempt)
            start_time = time.time()

            try:
                response = await client.send(request, stream=True)
            except httpx.ConnectTimeout as e:
                last_error = ConnectionTimeoutError(request_id=ctx.request_id)
                reason, detail = "timeout", f"Connect timeout: {e}"
            except httpx.TimeoutException as e:
                last_error = ReadTimeoutError(request_id=ctx.request_id)
                reason, detail = "timeout", f"Timeout: {e}"
            except httpx.TransportError as e:
                last_error = UpstreamError(
                    502,
                    message=f"Connection to Kiro API failed: {e}",
                    request_id=ctx.request_id,
                )
                reason, detail = "connection", f"Connection error: {e}"
            else:
                latency_ms = (time.time() - start_time) * 1000
                self._log_response(ctx, response.status_code, latency_ms, attempt)

                if response.status_code < 400:
                    return response

                body = (await response.aread()).decode("utf-8", errors="replace")
                await response.aclose()

                last_error = create_error_from_kiro(
                    response.status_code,
                    body,
                    request_id=ctx.request_id,
                    provider_request_id=response.headers.get("x-amzn-requestid", ""),
                    retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                )
                detail = f"Status {response.status_code}: {body[:200]}"

                if response.status_code == 403:
                    force_refresh = True
                    reason = "auth"
                elif config.is_retryable(response.status_code):
                    reason = "rate_limited" if response.status_code == 429 else "server_error"
                else:
                    raise last_error

            if attempt + 1 >= attempts:
                break

            get_metrics().record_upstream_retry(reason)
            if reason == "auth":
                self._log_retry(ctx, attempt + 1, 0.0, detail)
                continue

            delay = calculate_backoff(
                attempt,
                config.base_delay,
                config.max_delay,
                config.exponential_base,
                config.jitter_factor,
                config.min_delay,
            )
            self._log_retry(ctx, attempt + 1, delay, detail)
            await asyncio.sleep(delay)

        logger.error(
            f"STEP [{ctx.step_name}] All {attempts} attempts failed",
            request_id=ctx.request_id,
        )
        raise last_error
