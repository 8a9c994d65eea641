"""
Kiro Gateway - Streaming Module

Decoding of the Kiro binary event stream:
- Frame decoding with partial-frame buffering and byte resync
- Structural classification of JSON payloads
- Tool call accumulation, finalization and deduplication
- The per-request parser tying them together
"""

from .events import (
    EventKind,
    SemanticEvent,
    classify_event,
)
from .frames import (
    MAX_FRAME_LENGTH,
    MIN_FRAME_LENGTH,
    Frame,
    decode_frames,
)
from .parser import EventStreamParser
from .tool_calls import (
    EMPTY_ARGUMENTS,
    AccumulatorState,
    FinalizedToolCall,
    ToolCallAccumulator,
    ToolCallTracker,
    canonicalize_arguments,
    deduplicate_tool_calls,
)

__all__ = [
    # Frames
    "Frame",
    "MAX_FRAME_LENGTH",
    "MIN_FRAME_LENGTH",
    "decode_frames",
    # Events
    "EventKind",
    "SemanticEvent",
    "classify_event",
    # Tool Calls
    "EMPTY_ARGUMENTS",
    "AccumulatorState",
    "FinalizedToolCall",
    "ToolCallAccumulator",
    "ToolCallTracker",
    "canonicalize_arguments",
    "deduplicate_tool_calls",
    # Parser
    "EventStreamParser",
]
