"""Decoding of frames received from the conversational agent.

Each raw frame is decoded exactly once into a :class:`ConversationEvent` whose
``kind`` is a closed enum. Frame types the daemon does not act on decode to
``EventKind.UNKNOWN`` so the session can log them rather than lose them.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventKind(Enum):
    METADATA = "metadata"
    TEXT_PARTIAL = "text_partial"
    TEXT_TENTATIVE = "text_tentative"
    TEXT_CORRECTION = "text_correction"
    AUDIO = "audio"
    DONE = "done"
    PING = "ping"
    UNKNOWN = "unknown"


class EventDecodeError(ValueError):
    """Raised for frames that are not JSON objects."""


_DONE_TYPES = frozenset({"response_completed", "response_end", "done", "conversation_end"})


@dataclass(slots=True, frozen=True)
class ConversationEvent:
    """One decoded frame.

    ``text`` is set for the text kinds, ``audio`` for AUDIO, ``event_id`` for
    PING, ``is_final`` for TEXT_PARTIAL; ``raw_type`` keeps the wire type name.
    """

    kind: EventKind
    raw_type: str = ""
    text: str = ""
    is_final: bool = False
    audio: bytes = b""
    event_id: Any = None
    conversation_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _section(message: dict[str, Any], key: str) -> dict[str, Any]:
    value = message.get(key)
    return value if isinstance(value, dict) else {}


def _decode_audio(message: dict[str, Any]) -> bytes:
    encoded = _section(message, "audio_event").get("audio_base_64") or _section(
        message, "audio"
    ).get("chunk")
    if not encoded:
        return b""
    try:
        return base64.b64decode(str(encoded), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise EventDecodeError(f"invalid base64 audio: {exc}") from exc


def decode_event(raw: str | bytes) -> ConversationEvent:
    """Decode one raw frame from the agent connection."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise EventDecodeError(f"frame is not JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise EventDecodeError("frame is not a JSON object")

    raw_type = str(message.get("type") or "")

    if raw_type == "conversation_initiation_metadata":
        metadata = _section(message, "conversation_initiation_metadata_event")
        return ConversationEvent(
            EventKind.METADATA,
            raw_type,
            conversation_id=metadata.get("conversation_id"),
            payload=message,
        )
    if raw_type == "agent_response":
        section = _section(message, "agent_response_event")
        return ConversationEvent(
            EventKind.TEXT_PARTIAL,
            raw_type,
            text=str(section.get("agent_response") or ""),
            is_final=section.get("is_final") is True,
            payload=message,
        )
    if raw_type == "agent_response_correction":
        section = _section(message, "agent_response_correction_event")
        return ConversationEvent(
            EventKind.TEXT_CORRECTION,
            raw_type,
            text=str(section.get("corrected_agent_response") or ""),
            payload=message,
        )
    if raw_type == "internal_tentative_agent_response":
        section = _section(message, "tentative_agent_response_internal_event")
        return ConversationEvent(
            EventKind.TEXT_TENTATIVE,
            raw_type,
            text=str(section.get("tentative_agent_response") or ""),
            payload=message,
        )
    if raw_type == "audio":
        return ConversationEvent(
            EventKind.AUDIO, raw_type, audio=_decode_audio(message), payload=message
        )
    if raw_type == "ping":
        section = _section(message, "ping_event")
        return ConversationEvent(
            EventKind.PING, raw_type, event_id=section.get("event_id"), payload=message
        )
    if raw_type in _DONE_TYPES:
        return ConversationEvent(EventKind.DONE, raw_type, payload=message)
    return ConversationEvent(EventKind.UNKNOWN, raw_type, payload=message)


def encode_frame(frame_type: str, **fields: Any) -> str:
    """Serialize an outbound client frame."""
    return json.dumps({"type": frame_type, **fields}, separators=(",", ":"))


def initiation_frame() -> str:
    return encode_frame("conversation_initiation_client_data")


def pong_frame(event_id: Any) -> str:
    return encode_frame("pong", event_id=event_id)


def contextual_update_frame(text: str) -> str:
    return encode_frame("contextual_update", text=text)


def user_message_frame(text: str) -> str:
    return encode_frame("user_message", text=text)


__all__ = [
    "ConversationEvent",
    "EventDecodeError",
    "EventKind",
    "contextual_update_frame",
    "decode_event",
    "encode_frame",
    "initiation_frame",
    "pong_frame",
    "user_message_frame",
]
