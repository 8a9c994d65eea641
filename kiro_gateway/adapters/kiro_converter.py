"""
Kiro Gateway - Request Converter

Converts a unified ChatCompletionRequest into a Kiro conversationState
payload for generateAssistantResponse.

Kiro only accepts strictly alternating user/assistant turns with the
system prompt folded into the first user message, so messages are
flattened and merged before the history is built.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..core.config import TOOL_DESCRIPTION_MAX_LENGTH, get_internal_model_id
from ..core.errors import InvalidRequestError
from ..core.models import ChatCompletionRequest, Message, Role, Tool
from ..core.utils import generate_conversation_id

ORIGIN = "AI_EDITOR"
CONTINUE_CONTENT = "Continue"
EMPTY_TOOL_RESULT = "(empty result)"


# ============================================================
# Tool Specifications
# ============================================================

def sanitize_json_schema(schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Strip JSON schema keys Kiro rejects.

    Removes empty "required" arrays and every "additionalProperties" key,
    recursing into nested objects and object items of lists.
    """
    if not schema:
        return {}

    result: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "required" and isinstance(value, list) and not value:
            continue
        if key == "additionalProperties":
            continue

        if key == "properties" and isinstance(value, dict):
            # Keys here are property names, not schema keywords
            result[key] = {
                name: sanitize_json_schema(prop) if isinstance(prop, dict) else prop
                for name, prop in value.items()
            }
        elif isinstance(value, dict):
            result[key] = sanitize_json_schema(value)
        elif isinstance(value, list):
            result[key] = [
                sanitize_json_schema(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def build_tool_specs(tools: Optional[List[Tool]]) -> Tuple[List[Dict[str, Any]], str]:
    """
    Build Kiro toolSpecification entries.

    Returns:
        (specs, documentation) where documentation holds descriptions too
        long for a tool definition, to be appended to the system prompt.
    """
    if not tools:
        return [], ""

    specs = []
    doc_parts = []
    for tool in tools:
        name = tool.function.name
        description = tool.function.description or f"Tool: {name}"

        if TOOL_DESCRIPTION_MAX_LENGTH > 0 and len(description) > TOOL_DESCRIPTION_MAX_LENGTH:
            doc_parts.append(f"## Tool: {name}\n\n{description}")
            description = f"[Full documentation in system prompt under '## Tool: {name}']"

        specs.append({
            "toolSpecification": {
                "name": name,
                "description": description,
                "inputSchema": {"json": sanitize_json_schema(tool.function.parameters)},
            }
        })

    documentation = ""
    if doc_parts:
        documentation = (
            "\n\n---\n# Tool Documentation\n"
            "The following tools have detailed documentation that couldn't fit "
            "in the tool definition.\n\n" + "\n\n---\n\n".join(doc_parts)
        )

    return specs, documentation


# ============================================================
# Message Flattening
# ============================================================

@dataclass
class FlatMessage:
    """A user or assistant turn in Kiro terms."""
    role: Role
    content: str = ""
    tool_uses: List[Dict[str, Any]] = field(default_factory=list)
    tool_results: List[Dict[str, Any]] = field(default_factory=list)


def _parse_tool_input(arguments: str) -> Dict[str, Any]:
    try:
        value = json.loads(arguments) if arguments else {}
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


def _flatten_assistant(msg: Message, has_tools: bool) -> FlatMessage:
    text_parts = [msg.text()] if msg.content else []
    tool_uses = []

    for tc in msg.tool_calls or []:
        tool_input = _parse_tool_input(tc.function.arguments)
        if has_tools:
            tool_uses.append({
                "name": tc.function.name,
                "input": tool_input,
                "toolUseId": tc.id,
            })
        else:
            text_parts.append(f"[Called tool: {tc.function.name}({_compact_json(tool_input)})]")

    return FlatMessage(role=Role.ASSISTANT, content="".join(text_parts), tool_uses=tool_uses)


def _flatten_tool_result(msg: Message, has_tools: bool) -> FlatMessage:
    result_text = msg.text()
    tool_use_id = msg.tool_call_id or ""

    if not has_tools:
        return FlatMessage(role=Role.USER, content=f"[Tool result for {tool_use_id}]: {result_text}")

    return FlatMessage(
        role=Role.USER,
        tool_results=[{
            "content": [{"text": result_text or EMPTY_TOOL_RESULT}],
            "status": "success",
            "toolUseId": tool_use_id,
        }],
    )


def flatten_messages(messages: List[Message], has_tools: bool) -> Tuple[str, List[FlatMessage]]:
    """
    Split out the system prompt and convert the rest to user/assistant turns.

    Tool calls and tool results are kept structured only when the request
    declares tools; otherwise Kiro rejects them, so they are rendered as text.
    """
    system_parts = []
    flat: List[FlatMessage] = []

    for msg in messages:
        if msg.role == Role.SYSTEM:
            system_parts.append(msg.text())
        elif msg.role == Role.USER:
            flat.append(FlatMessage(role=Role.USER, content=msg.text()))
        elif msg.role == Role.ASSISTANT:
            flat.append(_flatten_assistant(msg, has_tools))
        elif msg.role == Role.TOOL:
            flat.append(_flatten_tool_result(msg, has_tools))

    return "\n".join(system_parts), flat


def merge_adjacent_messages(messages: List[FlatMessage]) -> List[FlatMessage]:
    """Merge consecutive turns of the same role."""
    merged: List[FlatMessage] = []

    for msg in messages:
        if merged and merged[-1].role == msg.role:
            last = merged[-1]
            if last.content and msg.content:
                last.content = f"{last.content}\n{msg.content}"
            elif msg.content:
                last.content = msg.content
            last.tool_uses.extend(msg.tool_uses)
            last.tool_results.extend(msg.tool_results)
        else:
            merged.append(FlatMessage(
                role=msg.role,
                content=msg.content,
                tool_uses=list(msg.tool_uses),
                tool_results=list(msg.tool_results),
            ))

    return merged


# ============================================================
# Payload
# ============================================================

def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _user_input(content: str, model_id: str) -> Dict[str, Any]:
    return {"content": content, "modelId": model_id, "origin": ORIGIN}


def _history_entry(msg: FlatMessage, model_id: str) -> Dict[str, Any]:
    if msg.role == Role.USER:
        user_input = _user_input(msg.content, model_id)
        if msg.tool_results:
            user_input["userInputMessageContext"] = {"toolResults": msg.tool_results}
        return {"userInputMessage": user_input}

    entry: Dict[str, Any] = {"content": msg.content}
    if msg.tool_uses:
        entry["toolUses"] = msg.tool_uses
    return {"assistantResponseMessage": entry}


def build_kiro_payload(
    request: ChatCompletionRequest,
    profile_arn: Optional[str],
    conversation_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the generateAssistantResponse body for a request.

    Raises:
        InvalidRequestError: The request has no user or assistant messages
    """
    model_id = get_internal_model_id(request.model)
    has_tools = request.has_tools

    system_prompt, flat = flatten_messages(request.messages, has_tools)
    tool_specs, tool_docs = build_tool_specs(request.tools)
    if tool_docs:
        system_prompt = system_prompt + tool_docs if system_prompt else tool_docs.strip()

    messages = merge_adjacent_messages(flat)
    if not messages:
        raise InvalidRequestError("No messages to send", param="messages")

    history_messages = messages[:-1]
    current = messages[-1]

    if system_prompt:
        if history_messages and history_messages[0].role == Role.USER:
            first = history_messages[0]
            first.content = f"{system_prompt}\n\n{first.content}"
        elif not history_messages:
            current.content = f"{system_prompt}\n\n{current.content}"

    history = [_history_entry(msg, model_id) for msg in history_messages]

    current_content = current.content
    current_tool_results: List[Dict[str, Any]] = []
    if current.role == Role.ASSISTANT:
        history.append({"assistantResponseMessage": {"content": current_content}})
        current_content = CONTINUE_CONTENT
    else:
        current_tool_results = current.tool_results

    user_input = _user_input(current_content or CONTINUE_CONTENT, model_id)

    context: Dict[str, Any] = {}
    if tool_specs:
        context["tools"] = tool_specs
    if current_tool_results:
        context["toolResults"] = current_tool_results
    if context:
        user_input["userInputMessageContext"] = context

    conversation_state: Dict[str, Any] = {
        "chatTriggerType": "MANUAL",
        "conversationId": conversation_id or generate_conversation_id(),
        "currentMessage": {"userInputMessage": user_input},
    }
    if history:
        conversation_state["history"] = history

    payload: Dict[str, Any] = {"conversationState": conversation_state}
    if profile_arn:
        payload["profileArn"] = profile_arn

    return payload
