"""
Kiro Gateway - Core Module

Configuration, error taxonomy, internal models and the upstream HTTP client.
"""

from .config import (
    MODEL_MAPPING,
    GatewaySettings,
    get_internal_model_id,
    get_kiro_api_host,
    get_kiro_refresh_url,
    load_settings,
)
from .errors import (
    ErrorDetails,
    ErrorType,
    GatewayException,
    InfraError,
    SemanticError,
)
from .models import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    FinishReason,
    Message,
    Role,
    Tool,
    ToolCall,
)

__all__ = [
    # Config
    "MODEL_MAPPING",
    "GatewaySettings",
    "get_internal_model_id",
    "get_kiro_api_host",
    "get_kiro_refresh_url",
    "load_settings",
    # Errors
    "ErrorDetails",
    "ErrorType",
    "GatewayException",
    "InfraError",
    "SemanticError",
    # Models
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "FinishReason",
    "Message",
    "Role",
    "Tool",
    "ToolCall",
]
