"""Control messages exchanged between the daemon and the browser extension.

Every frame on the control channel is one JSON object
``{"intent": <kind>, "value": <value>}``; ``value`` is omitted for kinds that
carry none. The value's type is fixed by the kind and checked on
construction, and playback ranges are clamped here so every entry point
(voice, HTTP simulate) agrees on them.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .errors import ValidationFailed

SPEED_RANGE = (0.25, 3.0)
VOLUME_RANGE = (0, 100)


class IntentKind(str, Enum):
    """Every intent the extension understands."""

    BEGIN_LISTEN = "begin_listen"
    END_LISTEN = "end_listen"
    REWIND = "rewind"
    FORWARD = "forward"
    SET_SPEED = "set_speed"
    SET_VOLUME = "set_volume"
    PAUSE = "pause"
    PLAY = "play"
    JUMP_TO_PHRASE = "jump_to_phrase"
    AGENT_RESPONSE = "agent_response"


_NO_VALUE = frozenset(
    {IntentKind.BEGIN_LISTEN, IntentKind.END_LISTEN, IntentKind.PAUSE, IntentKind.PLAY}
)
_SECONDS = frozenset({IntentKind.REWIND, IntentKind.FORWARD})


@dataclass(slots=True, frozen=True)
class AgentResponse:
    """Answer text plus an optional URL of synthesized audio."""

    text: str
    audio_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "audioUrl": self.audio_url}


IntentValue = Union[int, float, str, AgentResponse, None]


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _clamp(value: int | float, bounds: tuple[int | float, int | float]) -> int | float:
    low, high = bounds
    return max(low, min(high, value))


def _normalize(kind: IntentKind, value: Any) -> IntentValue:
    if kind in _NO_VALUE:
        if value is not None:
            raise ValidationFailed(f"{kind.value} takes no value", field="value")
        return None

    if kind in _SECONDS:
        if not _is_number(value):
            raise ValidationFailed(f"{kind.value} needs a number of seconds", field="value")
        if value < 0:
            raise ValidationFailed("seconds must not be negative", field="value")
        return value

    if kind is IntentKind.SET_SPEED:
        if not _is_number(value):
            raise ValidationFailed("set_speed needs a numeric rate", field="value")
        return _clamp(value, SPEED_RANGE)

    if kind is IntentKind.SET_VOLUME:
        if not _is_number(value):
            raise ValidationFailed("set_volume needs a numeric percent", field="value")
        return _clamp(value, VOLUME_RANGE)

    if kind is IntentKind.JUMP_TO_PHRASE:
        if not isinstance(value, str) or not value.strip():
            raise ValidationFailed("jump_to_phrase needs a non-empty phrase", field="value")
        return value.strip()

    # agent_response
    if isinstance(value, AgentResponse):
        return value
    if not isinstance(value, dict):
        raise ValidationFailed("agent_response needs an object value", field="value")
    text = value.get("text")
    audio_url = value.get("audioUrl")
    if not isinstance(text, str):
        raise ValidationFailed("agent_response text must be a string", field="value.text")
    if audio_url is not None and not isinstance(audio_url, str):
        raise ValidationFailed(
            "agent_response audioUrl must be a string", field="value.audioUrl"
        )
    return AgentResponse(text=text, audio_url=audio_url)


@dataclass(slots=True, frozen=True)
class IntentMessage:
    """One immutable control message; build it with :meth:`create`."""

    kind: IntentKind
    value: IntentValue = None

    @classmethod
    def create(cls, kind: IntentKind | str, value: Any = None) -> IntentMessage:
        """Validate ``value`` against ``kind`` and return the message.

        Raises:
            ValidationFailed: unknown kind or a value of the wrong type.
        """
        try:
            kind = IntentKind(kind)
        except ValueError:
            raise ValidationFailed(f"unknown intent {kind!r}", field="intent") from None
        return cls(kind=kind, value=_normalize(kind, value))

    @classmethod
    def from_payload(cls, payload: Any) -> IntentMessage:
        """Build a message from a decoded JSON object."""
        if not isinstance(payload, dict):
            raise ValidationFailed("intent message must be a JSON object")
        if "intent" not in payload:
            raise ValidationFailed("missing intent", field="intent")
        return cls.create(payload["intent"], payload.get("value"))

    @classmethod
    def from_json(cls, raw: str | bytes) -> IntentMessage:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ValidationFailed(f"invalid JSON: {exc}") from exc
        return cls.from_payload(payload)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"intent": self.kind.value}
        if isinstance(self.value, AgentResponse):
            payload["value"] = self.value.to_dict()
        elif self.value is not None:
            payload["value"] = self.value
        return payload

    def to_json(self) -> str:
        """Serialize as a single compact, newline-free JSON frame."""
        return json.dumps(self.to_payload(), separators=(",", ":"), ensure_ascii=False)


def begin_listen() -> IntentMessage:
    return IntentMessage(IntentKind.BEGIN_LISTEN)


def end_listen() -> IntentMessage:
    return IntentMessage(IntentKind.END_LISTEN)


def agent_response(text: str, audio_url: str | None = None) -> IntentMessage:
    return IntentMessage(IntentKind.AGENT_RESPONSE, AgentResponse(text, audio_url))


__all__ = [
    "AgentResponse",
    "IntentKind",
    "IntentMessage",
    "SPEED_RANGE",
    "VOLUME_RANGE",
    "agent_response",
    "begin_listen",
    "end_listen",
]
