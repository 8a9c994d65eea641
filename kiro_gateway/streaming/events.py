"""
Kiro Gateway - Semantic Events

Payloads carry no type discriminator; their kind is inferred from which
keys are present. Rules are evaluated in order and the first match wins,
since a payload may satisfy several of them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class EventKind(str, Enum):
    """Kinds of events found in a Kiro response stream."""
    CONTENT = "content"
    TOOL_START = "tool_start"
    TOOL_INPUT = "tool_input"
    TOOL_STOP = "tool_stop"
    USAGE = "usage"
    CONTEXT_USAGE = "context_usage"
    FOLLOWUP = "followup"


@dataclass(frozen=True)
class SemanticEvent:
    """An event emitted to the caller of EventStreamParser.feed()."""
    kind: EventKind
    data: Any = None

    @classmethod
    def content(cls, text: str) -> "SemanticEvent":
        return cls(EventKind.CONTENT, text)

    @classmethod
    def usage(cls, value: Any) -> "SemanticEvent":
        return cls(EventKind.USAGE, value)

    @classmethod
    def context_usage(cls, value: Any) -> "SemanticEvent":
        return cls(EventKind.CONTEXT_USAGE, value)


_Rule = Tuple[EventKind, Callable[[Dict[str, Any]], bool]]

CLASSIFICATION_RULES: List[_Rule] = [
    (EventKind.CONTENT, lambda d: "content" in d),
    (EventKind.TOOL_START, lambda d: "name" in d),
    (EventKind.TOOL_INPUT, lambda d: "input" in d and "name" not in d),
    (EventKind.TOOL_STOP, lambda d: "stop" in d and "name" not in d),
    (EventKind.FOLLOWUP, lambda d: "followupPrompt" in d),
    (EventKind.USAGE, lambda d: "usage" in d),
    (EventKind.CONTEXT_USAGE, lambda d: "contextUsagePercentage" in d),
]


def classify_event(data: Any) -> Optional[EventKind]:
    """
    Determine the event kind of one decoded payload.

    Returns None for payloads that match no rule, including JSON values
    that are not objects; callers skip those.
    """
    if not isinstance(data, dict):
        return None
    for kind, matches in CLASSIFICATION_RULES:
        if matches(data):
            return kind
    return None
