"""
Kiro Gateway - Provider Adapter Base

The interface the API layer talks to. KiroAdapter is the production
implementation; tests substitute their own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from ..core.models import ChatCompletionRequest, ChatCompletionResponse, ModelInfo


@dataclass
class ProviderHealth:
    provider: str
    is_healthy: bool
    avg_latency_ms: Optional[int] = None
    last_error: Optional[str] = None


class BaseAdapter(ABC):
    """
    Chat completions against one upstream.

    Implementations convert the internal request into the upstream's
    format, call it, and map failures to GatewayException subclasses.
    """

    provider: str

    @abstractmethod
    async def chat_completion(self, request: ChatCompletionRequest, request_id: str = "") -> ChatCompletionResponse:
        """Run the request to completion and return the collected response."""

    @abstractmethod
    def chat_completion_stream(self, request: ChatCompletionRequest, request_id: str = "") -> AsyncIterator[str]:
        """
        Yield OpenAI-style SSE lines ending with ``data: [DONE]``.

        Raises StreamInterruptedError, carrying the text already sent, when
        the upstream fails after content started.
        """

    @abstractmethod
    def list_models(self) -> List[ModelInfo]:
        ...

    @abstractmethod
    async def health_check(self) -> ProviderHealth:
        ...

    async def close(self):
        """Release network resources. No-op by default."""
