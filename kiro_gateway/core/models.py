"""
Kiro Gateway - Core Data Models

Internal request/response types passed between the API layer and the
Kiro adapter. The API layer validates with pydantic and converts into
these dataclasses; responses serialize back to the OpenAI shape with
``to_dict()``.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Kiro never reports a length cutoff, so only these two occur."""
    STOP = "stop"
    TOOL_CALLS = "tool_calls"


# ============================================================
# Tools
# ============================================================

@dataclass
class FunctionDefinition:
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Tool:
    """A tool the client declares; becomes a Kiro toolSpecification."""
    function: FunctionDefinition
    type: Literal["function"] = "function"


@dataclass
class FunctionCall:
    name: str
    arguments: str  # compact JSON text


@dataclass
class ToolCall:
    id: str
    function: FunctionCall
    type: Literal["function"] = "function"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.function.name, "arguments": self.function.arguments},
        }


# ============================================================
# Messages
# ============================================================

@dataclass
class TextContent:
    text: str = ""
    type: Literal["text"] = "text"


@dataclass
class Message:
    """
    One conversation turn.

    ``content`` is either a string or a list of text parts; image parts are
    rejected by the API layer since Kiro's payload has no slot for them.
    """
    role: Role
    content: Union[str, List[TextContent], None] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: Union[str, List[TextContent]]) -> Message:
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: Optional[str] = None, tool_calls: Optional[List[ToolCall]] = None) -> Message:
        return cls(Role.ASSISTANT, content, tool_calls=tool_calls)

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> Message:
        return cls(Role.TOOL, content, tool_call_id=tool_call_id)

    def text(self) -> str:
        """Plain text of the message; parts are joined without separators."""
        if not self.content:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content)


@dataclass
class ChatCompletionRequest:
    """
    A validated chat request.

    Example:
        request = ChatCompletionRequest(
            model="claude-sonnet-4",
            messages=[Message.system("Be brief."), Message.user("Hello!")],
        )
    """
    model: str
    messages: List[Message]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False
    tools: Optional[List[Tool]] = None

    @property
    def has_tools(self) -> bool:
        return bool(self.tools)


# ============================================================
# Responses
# ============================================================

@dataclass
class KiroMetadata:
    """
    Values Kiro reports that have no OpenAI counterpart.

    ``usage`` is Kiro's own usage figure (credits, not tokens) and
    ``context_usage_percentage`` how full the context window is.
    """
    request_id: str
    latency_ms: int
    usage: Any = None
    context_usage_percentage: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "latency_ms": self.latency_ms,
            "usage": self.usage,
            "context_usage_percentage": self.context_usage_percentage,
        }


@dataclass
class Choice:
    message: Message
    finish_reason: FinishReason
    index: int = 0


@dataclass
class ChatCompletionResponse:
    """A collected (non-streaming) completion."""
    model: str
    choices: List[Choice]
    id: str = field(default_factory=lambda: f"chatcmpl-{uuid.uuid4().hex[:12]}")
    created: int = field(default_factory=lambda: int(time.time()))
    metadata: Optional[KiroMetadata] = None

    @classmethod
    def create(
        cls,
        content: str,
        model: str,
        finish_reason: FinishReason = FinishReason.STOP,
        tool_calls: Optional[List[ToolCall]] = None,
        metadata: Optional[KiroMetadata] = None
    ) -> ChatCompletionResponse:
        message = Message.assistant(content=content or None, tool_calls=tool_calls)
        return cls(model=model, choices=[Choice(message, finish_reason)], metadata=metadata)

    def to_dict(self) -> Dict[str, Any]:
        """
        OpenAI chat.completion body.

        Token counts are always zero because Kiro does not report them;
        Kiro's own figures go under ``_kiro``.
        """
        choices = []
        for choice in self.choices:
            message: Dict[str, Any] = {
                "role": choice.message.role.value,
                "content": choice.message.text() or None,
            }
            if choice.message.tool_calls:
                message["tool_calls"] = [tc.to_dict() for tc in choice.message.tool_calls]
            choices.append({
                "index": choice.index,
                "message": message,
                "finish_reason": choice.finish_reason.value,
            })

        result: Dict[str, Any] = {
            "id": self.id,
            "object": "chat.completion",
            "created": self.created,
            "model": self.model,
            "provider": "kiro",
            "choices": choices,
            "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
        }
        if self.metadata:
            result["_kiro"] = self.metadata.to_dict()
        return result


@dataclass
class ModelInfo:
    """An external model name and the Kiro model id it maps to."""
    id: str
    internal_id: str
    owned_by: str = "kiro"
    capabilities: List[str] = field(default_factory=lambda: ["chat", "tools", "streaming"])

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities
