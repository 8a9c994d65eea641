"""
Kiro Gateway - Kiro Provider Adapter

Adapter for the Kiro generateAssistantResponse API, which streams AWS
binary event-stream frames rather than SSE.
"""

import asyncio
import json
import time
import uuid
from typing import AsyncIterator, List, Optional

import httpx

from .base import BaseAdapter, ProviderHealth
from .kiro_converter import build_kiro_payload
from ..auth.manager import KiroAuthManager
from ..core.config import MODEL_MAPPING
from ..core.errors import (
    PROVIDER,
    GatewayException,
    ReadTimeoutError,
    StreamInterruptedError,
    UpstreamError,
)
from ..core.http_client import KiroHttpClient, RetryConfig
from ..core.models import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    FinishReason,
    FunctionCall,
    KiroMetadata,
    ModelInfo,
    ToolCall,
)
from ..observability.logging import TimedOperation, get_logger
from ..observability.metrics import get_metrics
from ..streaming import EventKind, EventStreamParser, FinalizedToolCall, SemanticEvent

logger = get_logger(__name__)

DEFAULT_IDLE_TIMEOUT = 15.0


class KiroAdapter(BaseAdapter):
    """
    Adapter for the Kiro API.

    Supports:
    - Chat completions for the models in MODEL_MAPPING
    - Tool/Function calling
    - Streaming
    """

    provider = PROVIDER

    def __init__(
        self,
        auth: KiroAuthManager,
        http_client: Optional[KiroHttpClient] = None,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        retry_config: Optional[RetryConfig] = None,
        timeout: float = 120.0
    ):
        self.auth = auth
        self.http = http_client or KiroHttpClient(auth, timeout=timeout, retry_config=retry_config)
        self.idle_timeout = idle_timeout

    async def _iter_events(
        self,
        request: ChatCompletionRequest,
        request_id: str,
        parser: EventStreamParser,
        partial: List[str]
    ) -> AsyncIterator[SemanticEvent]:
        """
        Run one upstream call and yield its semantic events.

        Reading stops once the parser reports completion or no bytes arrive
        within the idle timeout; Kiro may keep the connection open after
        the response is finished. Content text is collected into ``partial``.
        """
        # Refresh first so the payload carries the current profile ARN
        await self.auth.get_access_token()
        payload = build_kiro_payload(request, self.auth.profile_arn)

        async with self.http.stream_generate(payload, request_id, model=request.model) as response:
            chunks = response.aiter_bytes()
            while not parser.is_complete():
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), timeout=self.idle_timeout)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    logger.debug(
                        "No upstream data within idle timeout, ending stream",
                        request_id=request_id,
                        idle_timeout=self.idle_timeout,
                    )
                    break
                except httpx.HTTPError as e:
                    if partial:
                        raise StreamInterruptedError(
                            partial_content="".join(partial),
                            request_id=request_id
                        ) from e
                    if isinstance(e, httpx.TimeoutException):
                        raise ReadTimeoutError(request_id=request_id) from e
                    raise UpstreamError(
                        502,
                        message=f"Kiro stream failed: {e}",
                        request_id=request_id
                    ) from e

                for event in parser.feed(chunk):
                    if event.kind == EventKind.CONTENT:
                        partial.append(event.data)
                    yield event

        if parser.malformed_payloads:
            logger.debug(
                "Skipped malformed payloads",
                request_id=request_id,
                count=parser.malformed_payloads,
            )

    def _finish_tool_calls(
        self,
        parser: EventStreamParser,
        model: str,
        request_id: str
    ) -> List[FinalizedToolCall]:
        calls = parser.get_finalized_tool_calls()
        placeholders = parser.tool_calls.discarded_arguments
        get_metrics().record_tool_calls(model, total=len(calls), placeholders=placeholders)
        if placeholders:
            logger.warning(
                "Tool call arguments were not valid JSON and were replaced with {}",
                request_id=request_id,
                count=placeholders,
            )
        return calls

    async def chat_completion(
        self,
        request: ChatCompletionRequest,
        request_id: str = ""
    ) -> ChatCompletionResponse:
        """Generate a chat completion by draining the event stream."""
        request_id = request_id or f"req_{uuid.uuid4().hex[:12]}"
        start_time = time.time()

        parser = EventStreamParser()
        partial: List[str] = []
        usage = None
        context_usage = None

        async for event in self._iter_events(request, request_id, parser, partial):
            if event.kind == EventKind.USAGE:
                usage = event.data
            elif event.kind == EventKind.CONTEXT_USAGE:
                context_usage = event.data

        calls = self._finish_tool_calls(parser, request.model, request_id)
        tool_calls = [
            ToolCall(id=c.id, function=FunctionCall(name=c.name, arguments=c.arguments))
            for c in calls
        ] or None

        latency_ms = int((time.time() - start_time) * 1000)

        return ChatCompletionResponse.create(
            content="".join(partial),
            model=request.model,
            finish_reason=FinishReason.TOOL_CALLS if tool_calls else FinishReason.STOP,
            tool_calls=tool_calls,
            metadata=KiroMetadata(
                request_id=request_id,
                latency_ms=latency_ms,
                usage=usage,
                context_usage_percentage=context_usage,
            )
        )

    async def chat_completion_stream(
        self,
        request: ChatCompletionRequest,
        request_id: str = ""
    ) -> AsyncIterator[str]:
        """
        Generate a streaming chat completion.

        Chunk order: role, content deltas, one delta per tool call, finish,
        then [DONE]. Tool calls are only known once the stream ends, so they
        are never interleaved with content.

        Errors before any content raise the mapped error; after content
        they raise StreamInterruptedError with the partial text.
        """
        request_id = request_id or f"req_{uuid.uuid4().hex[:12]}"
        chunk_id = f"chatcmpl-{uuid.uuid4().hex[:12]}"
        created = int(time.time())
        start_time = time.time()

        def sse(delta, finish_reason=None) -> str:
            chunk = {
                "id": chunk_id,
                "object": "chat.completion.chunk",
                "created": created,
                "model": request.model,
                "choices": [{
                    "index": 0,
                    "delta": delta,
                    "finish_reason": finish_reason
                }]
            }
            return f"data: {json.dumps(chunk)}\n\n"

        parser = EventStreamParser()
        partial: List[str] = []
        first_token = True

        yield sse({"role": "assistant", "content": ""})

        try:
            async for event in self._iter_events(request, request_id, parser, partial):
                if event.kind != EventKind.CONTENT:
                    continue
                if first_token:
                    get_metrics().record_time_to_first_token(request.model, time.time() - start_time)
                    first_token = False
                yield sse({"content": event.data})
        except StreamInterruptedError:
            raise
        except GatewayException:
            if partial:
                raise StreamInterruptedError(
                    partial_content="".join(partial),
                    request_id=request_id
                )
            raise

        calls = self._finish_tool_calls(parser, request.model, request_id)
        for index, call in enumerate(calls):
            yield sse({"tool_calls": [{"index": index, **call.to_dict()}]})

        finish_reason = FinishReason.TOOL_CALLS if calls else FinishReason.STOP
        yield sse({}, finish_reason=finish_reason.value)
        yield "data: [DONE]\n\n"

    def list_models(self) -> List[ModelInfo]:
        """List the external model names Kiro accepts."""
        return [
            ModelInfo(id=name, internal_id=internal_id)
            for name, internal_id in MODEL_MAPPING.items()
        ]

    async def health_check(self) -> ProviderHealth:
        """Healthy when an access token can be obtained."""
        try:
            with TimedOperation("kiro_health_check", logger) as timer:
                await self.auth.get_access_token()
        except GatewayException as e:
            return ProviderHealth(
                provider=self.provider,
                is_healthy=False,
                last_error=e.error.message
            )
        return ProviderHealth(
            provider=self.provider,
            is_healthy=True,
            avg_latency_ms=int(timer.duration_ms)
        )

    async def close(self):
        await self.http.close()
        await self.auth.close()
