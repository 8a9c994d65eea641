"""
Kiro Gateway - Event Stream Parser

Turns the raw bytes of one generateAssistantResponse call into an ordered
list of semantic events and a final list of tool calls.

Backend quirks handled here:
- The last content chunk is sometimes resent; identical consecutive
  content is suppressed.
- A new tool start may arrive before the previous call's stop.
- Tool argument fragments are split arbitrarily across frames.
- The connection may stay open after the response is logically finished;
  is_complete() lets the caller stop reading.

One parser serves one request. feed() must be called sequentially in
transport order; nothing here blocks, performs I/O or raises.
"""

import json
from typing import Any, Dict, List, Optional, Union

from ..core.utils import generate_tool_call_id
from ..observability.logging import get_logger
from .events import EventKind, SemanticEvent, classify_event
from .frames import decode_frames
from .tool_calls import FinalizedToolCall, ToolCallTracker, extract_input_text

logger = get_logger(__name__)


class EventStreamParser:
    """
    Stateful decoder for a single Kiro response stream.

    Usage:
        parser = EventStreamParser()
        async for chunk in response.aiter_bytes():
            for event in parser.feed(chunk):
                ...
            if parser.is_complete():
                break
        tool_calls = parser.get_finalized_tool_calls()
    """

    def __init__(self):
        self._buffer = b""
        self._last_content: Optional[str] = None
        self._usage_seen = False
        self._tool_calls = ToolCallTracker()

        self.malformed_payloads = 0
        self.unclassified_payloads = 0

    @property
    def pending_bytes(self) -> int:
        """Bytes held back waiting for the rest of a frame."""
        return len(self._buffer)

    @property
    def tool_calls(self) -> ToolCallTracker:
        return self._tool_calls

    def feed(self, chunk: Union[bytes, bytearray, str]) -> List[SemanticEvent]:
        """
        Consume the next chunk of the response body.

        Returns:
            Events decoded from the frames this chunk completed, in order.
        """
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")

        payloads, self._buffer = decode_frames(self._buffer + bytes(chunk))

        events: List[SemanticEvent] = []
        for payload in payloads:
            try:
                data = json.loads(payload)
            except (ValueError, RecursionError):
                self.malformed_payloads += 1
                logger.debug("Skipping malformed payload", payload_preview=payload[:100])
                continue

            kind = classify_event(data)
            if kind is None:
                self.unclassified_payloads += 1
                continue

            event = self._dispatch(kind, data)
            if event is not None:
                events.append(event)

        return events

    def _dispatch(self, kind: EventKind, data: Dict[str, Any]) -> Optional[SemanticEvent]:
        if kind == EventKind.CONTENT:
            return self._on_content(data)
        if kind == EventKind.TOOL_START:
            self._on_tool_start(data)
            return None
        if kind == EventKind.TOOL_INPUT:
            if not self._tool_calls.append(extract_input_text(data.get("input"))):
                logger.debug("Dropping tool input with no open tool call")
            return None
        if kind == EventKind.TOOL_STOP:
            if data.get("stop"):
                self._tool_calls.finalize()
            return None
        if kind == EventKind.USAGE:
            self._usage_seen = True
            return SemanticEvent.usage(_value_or_zero(data.get("usage")))
        if kind == EventKind.CONTEXT_USAGE:
            return SemanticEvent.context_usage(_value_or_zero(data.get("contextUsagePercentage")))
        # Followup prompts have no event of their own
        return None

    def _on_content(self, data: Dict[str, Any]) -> Optional[SemanticEvent]:
        content = data.get("content")
        if not isinstance(content, str):
            content = str(content) if content else ""

        if data.get("followupPrompt"):
            return None
        if content == self._last_content:
            return None

        self._last_content = content
        return SemanticEvent.content(content)

    def _on_tool_start(self, data: Dict[str, Any]):
        tool_use_id = data.get("toolUseId")
        name = data.get("name")

        self._tool_calls.start(
            id=str(tool_use_id) if tool_use_id else generate_tool_call_id(),
            name=str(name) if name else "",
            arguments=extract_input_text(data.get("input")),
        )

        if data.get("stop"):
            self._tool_calls.finalize()

    def is_complete(self) -> bool:
        """True once usage has been reported and no tool call is still open."""
        return self._usage_seen and not self._tool_calls.is_accumulating

    def get_finalized_tool_calls(self) -> List[FinalizedToolCall]:
        """
        Finalize any open tool call and return the deduplicated list.

        Safe to call repeatedly; later calls return the same result.
        """
        return self._tool_calls.get_all_calls()

    def reset(self):
        """Return to the initial state."""
        self._buffer = b""
        self._last_content = None
        self._usage_seen = False
        self._tool_calls.reset()
        self.malformed_payloads = 0
        self.unclassified_payloads = 0


def _value_or_zero(value: Any) -> Any:
    return 0 if value is None else value
