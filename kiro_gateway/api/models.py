"""
Kiro Gateway - API Request/Response Models

Pydantic models for the OpenAI-compatible wire format. Request models
validate client input and convert into the internal dataclasses with
``to_internal()``.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from ..core import models as core


# ============================================================
# Tools
# ============================================================

class FunctionSchema(BaseModel):
    # Kiro rejects tool names outside this alphabet
    name: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_-]+$")
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    type: Literal["function"] = "function"
    function: FunctionSchema

    def to_internal(self) -> core.Tool:
        return core.Tool(
            function=core.FunctionDefinition(
                name=self.function.name,
                description=self.function.description,
                parameters=self.function.parameters,
            )
        )


class ToolCallFunction(BaseModel):
    name: str
    arguments: str = ""


class ToolCallInput(BaseModel):
    """A tool call from an earlier assistant turn, echoed back by the client."""
    id: str
    type: Literal["function"] = "function"
    function: ToolCallFunction


# ============================================================
# Messages
# ============================================================

class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class MessageInput(BaseModel):
    """
    One message of the conversation.

    Tool messages must name the call they answer; only assistant
    messages may carry tool calls.
    """
    role: core.Role
    content: Optional[Union[str, List[TextPart]]] = None
    name: Optional[str] = Field(default=None, max_length=64)
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCallInput]] = None

    @model_validator(mode="after")
    def check_role_fields(self):
        if self.role == core.Role.TOOL and not self.tool_call_id:
            raise ValueError("tool_call_id is required for tool messages")
        if self.tool_calls and self.role != core.Role.ASSISTANT:
            raise ValueError("tool_calls are only allowed on assistant messages")
        return self

    def to_internal(self) -> core.Message:
        content = self.content
        if isinstance(content, list):
            content = [core.TextContent(text=part.text) for part in content]

        tool_calls = None
        if self.tool_calls:
            tool_calls = [
                core.ToolCall(
                    id=tc.id,
                    function=core.FunctionCall(name=tc.function.name, arguments=tc.function.arguments),
                )
                for tc in self.tool_calls
            ]

        return core.Message(
            role=self.role,
            content=content,
            tool_call_id=self.tool_call_id,
            tool_calls=tool_calls,
        )


class ChatCompletionRequest(BaseModel):
    """
    Body of POST /v1/chat/completions.

    Unknown OpenAI fields such as tool_choice or top_p are accepted and
    ignored; Kiro has no equivalent for them.
    """
    model: str = Field(..., min_length=1, description="Model name, e.g. 'claude-sonnet-4-5' or 'auto'")
    messages: List[MessageInput] = Field(..., min_length=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    stream: bool = False
    tools: Optional[List[ToolDefinition]] = None

    @field_validator("messages")
    @classmethod
    def require_conversation(cls, v):
        if all(m.role == core.Role.SYSTEM for m in v):
            raise ValueError("messages must contain a user, assistant or tool message")
        return v

    def to_internal(self) -> core.ChatCompletionRequest:
        return core.ChatCompletionRequest(
            model=self.model,
            messages=[m.to_internal() for m in self.messages],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=self.stream,
            tools=[t.to_internal() for t in self.tools] if self.tools else None,
        )


# ============================================================
# Models Endpoint
# ============================================================

class ModelData(BaseModel):
    id: str
    object: Literal["model"] = "model"
    created: int = 0
    owned_by: str = "kiro"
    internal_id: str
    capabilities: List[str] = Field(default_factory=list)

    @classmethod
    def from_info(cls, info: core.ModelInfo) -> "ModelData":
        return cls(
            id=info.id,
            owned_by=info.owned_by,
            internal_id=info.internal_id,
            capabilities=info.capabilities,
        )


class ModelListResponse(BaseModel):
    object: Literal["list"] = "list"
    data: List[ModelData]
