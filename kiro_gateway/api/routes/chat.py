"""
Kiro Gateway - Chat Completions API

Endpoints for chat completion requests.
Compatible with OpenAI's Chat Completions API.
"""

import time
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from ...adapters.base import BaseAdapter
from ...core.errors import (
    ErrorDetails,
    ErrorType,
    GatewayException,
    InfraError,
    create_stream_error_chunk,
)
from ...core.models import ChatCompletionRequest as InternalRequest
from ...observability.logging import LogContext, get_logger
from ...observability.metrics import get_metrics
from ..dependencies import add_standard_headers, get_adapter, verify_api_key
from ..models import ChatCompletionRequest

router = APIRouter(prefix="/v1", tags=["chat"])

logger = get_logger(__name__)

ENDPOINT = "/v1/chat/completions"


# ============================================================
# Chat Completions Endpoint
# ============================================================

@router.post("/chat/completions")
async def create_chat_completion(
    body: ChatCompletionRequest,
    request_id: str = Depends(verify_api_key),
    adapter: BaseAdapter = Depends(get_adapter)
):
    """
    Create a chat completion.

    **Models:** any name from `GET /v1/models`; unknown names are passed
    to Kiro unchanged.

    **Streaming:**
    Set `stream: true` to receive Server-Sent Events (SSE).
    """
    LogContext.set_current(LogContext(request_id=request_id, model=body.model, endpoint=ENDPOINT))
    internal_request = body.to_internal()

    if body.stream:
        return _handle_streaming_request(internal_request, adapter, request_id)

    return await _handle_non_streaming_request(internal_request, adapter, request_id)


def _record(request: InternalRequest, start_time: float, status_code: int, error_type=None, streaming=False):
    get_metrics().record_request(
        endpoint=ENDPOINT,
        model=request.model,
        status_code=status_code,
        duration_seconds=time.time() - start_time,
        error_type=error_type,
        streaming=streaming,
    )


def _unexpected_stream_error(exc: Exception, request_id: str) -> InfraError:
    return InfraError(
        ErrorDetails(
            code="stream_error",
            message=str(exc),
            type=ErrorType.INFRA,
            request_id=request_id,
            retryable=True
        ),
        status_code=500
    )


def _handle_streaming_request(
    request: InternalRequest,
    adapter: BaseAdapter,
    request_id: str
) -> StreamingResponse:
    """
    Stream SSE chunks.

    The HTTP status is already 200 once streaming starts, so failures end
    the stream with an error chunk followed by [DONE].
    """

    async def generate() -> AsyncIterator[str]:
        start_time = time.time()
        failure = None

        try:
            async for chunk in adapter.chat_completion_stream(request, request_id):
                yield chunk
        except GatewayException as e:
            failure = e
            logger.warning("Stream ended with error", request_id=request_id, code=e.error.code)
        except Exception as e:
            failure = _unexpected_stream_error(e, request_id)
            logger.exception("Unexpected streaming failure", request_id=request_id)

        if failure is None:
            _record(request, start_time, 200, streaming=True)
            return

        _record(request, start_time, failure.status_code, failure.error.code, streaming=True)
        yield create_stream_error_chunk(failure)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Request-Id": request_id,
        }
    )


async def _handle_non_streaming_request(
    request: InternalRequest,
    adapter: BaseAdapter,
    request_id: str
) -> JSONResponse:
    start_time = time.time()

    try:
        response = await adapter.chat_completion(request, request_id)
    except GatewayException as e:
        _record(request, start_time, e.status_code, e.error.code)
        raise

    _record(request, start_time, 200)

    latency_ms = response.metadata.latency_ms if response.metadata else None
    return JSONResponse(
        content=response.to_dict(),
        headers=add_standard_headers({}, request_id, **{"X-Latency-Ms": latency_ms})
    )
