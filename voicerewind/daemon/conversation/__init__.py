"""Conversational backend sessions and turn aggregation."""

from .events import ConversationEvent, EventDecodeError, EventKind, decode_event
from .registry import SessionRegistry
from .session import ConversationSession
from .turn import TurnAggregator, TurnPolicy, TurnResult

__all__ = [
    "ConversationEvent",
    "ConversationSession",
    "EventDecodeError",
    "EventKind",
    "SessionRegistry",
    "TurnAggregator",
    "TurnPolicy",
    "TurnResult",
    "decode_event",
]
