"""
Kiro Gateway - Tool Call Streaming

Tool calls arrive in pieces:
1. A start payload with name, toolUseId and possibly initial input
2. Any number of input payloads carrying raw argument text fragments
3. A stop payload, or simply the next tool start

Fragments are concatenated as text and only parsed once the call is
finalized, because a single fragment is rarely valid JSON on its own.

This module provides:
- The single-slot accumulator and its finalization into canonical records
- Deduplication of the finalized list
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

EMPTY_ARGUMENTS = "{}"


def to_json_text(value: Any) -> str:
    """Compact JSON serialization used for every canonical argument string."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def extract_input_text(value: Any) -> str:
    """
    Turn a payload's ``input`` field into argument text.

    Objects and arrays are serialized, other truthy values stringified,
    and missing or falsy values contribute nothing.
    """
    if isinstance(value, (dict, list)):
        return to_json_text(value)
    if not value:
        return ""
    if isinstance(value, str):
        return value
    return to_json_text(value)


def try_canonicalize(text: str) -> Optional[str]:
    """Re-serialize JSON text compactly, or None if it does not parse."""
    try:
        parsed = json.loads(text)
        # NaN/Infinity parse in Python but are not JSON
        return json.dumps(parsed, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (ValueError, RecursionError):
        return None


def canonicalize_arguments(text: str) -> str:
    """
    Parse accumulated argument text and re-serialize it.

    Blank or unparseable text becomes the empty-object placeholder.
    """
    if not text.strip():
        return EMPTY_ARGUMENTS
    return try_canonicalize(text) or EMPTY_ARGUMENTS


@dataclass(frozen=True)
class FinalizedToolCall:
    """A completed tool call. ``arguments`` is always valid JSON text."""
    id: str
    name: str
    arguments: str

    @property
    def has_placeholder_arguments(self) -> bool:
        return self.arguments == EMPTY_ARGUMENTS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to OpenAI tool call format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.arguments
            }
        }


@dataclass
class ToolCallAccumulator:
    """The in-flight tool call whose argument text is still growing."""
    id: str
    name: str = ""
    arguments_buffer: str = ""

    def append(self, fragment: str):
        self.arguments_buffer += fragment

    @property
    def is_blank(self) -> bool:
        return not self.arguments_buffer.strip()

    def finalize(self) -> FinalizedToolCall:
        return FinalizedToolCall(
            id=self.id,
            name=self.name,
            arguments=canonicalize_arguments(self.arguments_buffer),
        )


class AccumulatorState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"


class ToolCallTracker:
    """
    Tracks at most one open tool call plus the finalized list.

    Transitions:
        IDLE --start--> ACCUMULATING
        ACCUMULATING --start--> ACCUMULATING (previous call finalized first)
        ACCUMULATING --finalize--> IDLE
    """

    def __init__(self):
        self._current: Optional[ToolCallAccumulator] = None
        self._finalized: List[FinalizedToolCall] = []
        self.discarded_arguments = 0

    @property
    def state(self) -> AccumulatorState:
        if self._current is None:
            return AccumulatorState.IDLE
        return AccumulatorState.ACCUMULATING

    @property
    def is_accumulating(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> Optional[ToolCallAccumulator]:
        return self._current

    @property
    def finalized(self) -> List[FinalizedToolCall]:
        """Finalized calls in order, before deduplication."""
        return list(self._finalized)

    def start(self, id: str, name: str = "", arguments: str = ""):
        """Open a new call, implicitly finalizing one that is still open."""
        if self._current is not None:
            self.finalize()
        self._current = ToolCallAccumulator(id=id, name=name, arguments_buffer=arguments)

    def append(self, fragment: str) -> bool:
        """
        Append argument text to the open call.

        Returns False when no call is open and the fragment was dropped.
        """
        if self._current is None:
            return False
        self._current.append(fragment)
        return True

    def finalize(self) -> Optional[FinalizedToolCall]:
        """Close the open call, if any, and record it."""
        if self._current is None:
            return None

        call = self._current.finalize()
        if call.has_placeholder_arguments and not self._current.is_blank:
            if try_canonicalize(self._current.arguments_buffer) is None:
                self.discarded_arguments += 1

        self._finalized.append(call)
        self._current = None
        return call

    def get_all_calls(self) -> List[FinalizedToolCall]:
        """Finalize any open call and return the deduplicated list."""
        self.finalize()
        return deduplicate_tool_calls(self._finalized)

    def call_count(self) -> int:
        return len(self._finalized)

    def reset(self):
        self._current = None
        self._finalized = []
        self.discarded_arguments = 0


def deduplicate_tool_calls(calls: List[FinalizedToolCall]) -> List[FinalizedToolCall]:
    """
    Remove duplicate and partial tool calls.

    Pass 1 keeps one call per id: real arguments beat the placeholder, and
    longer arguments beat shorter ones. Calls without an id are dropped.
    Pass 2 drops calls whose (name, arguments) repeat an earlier survivor.
    Order follows each id's first appearance.
    """
    by_id: Dict[str, FinalizedToolCall] = {}

    for call in calls:
        if not call.id:
            continue
        existing = by_id.get(call.id)
        if existing is None:
            by_id[call.id] = call
        elif not call.has_placeholder_arguments and (
            existing.has_placeholder_arguments
            or len(call.arguments) > len(existing.arguments)
        ):
            by_id[call.id] = call

    seen = set()
    unique: List[FinalizedToolCall] = []
    for call in by_id.values():
        key = (call.name, call.arguments)
        if key in seen:
            continue
        seen.add(key)
        unique.append(call)

    return unique
