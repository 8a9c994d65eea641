"""
Kiro Gateway - API Layer

OpenAI-compatible REST endpoints:
- Chat completions (streaming and non-streaming)
- Model listing
"""

from .dependencies import (
    add_standard_headers,
    get_adapter,
    get_request_id,
    set_adapter_getter,
    set_settings_getter,
    verify_api_key,
)
from .models import (
    ChatCompletionRequest,
    MessageInput,
    ModelData,
    ModelListResponse,
    ToolDefinition,
)
from .routes import chat_router, models_router

__all__ = [
    # Routers
    "chat_router",
    "models_router",
    # Models
    "ChatCompletionRequest",
    "MessageInput",
    "ModelData",
    "ModelListResponse",
    "ToolDefinition",
    # Dependencies
    "add_standard_headers",
    "get_adapter",
    "get_request_id",
    "set_adapter_getter",
    "set_settings_getter",
    "verify_api_key",
]
