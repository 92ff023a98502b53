"""Tests for the control message model."""

import pytest

from voicerewind.daemon.errors import ValidationFailed
from voicerewind.daemon.intents import (
    AgentResponse,
    IntentKind,
    IntentMessage,
    agent_response,
    begin_listen,
)


@pytest.mark.unit
class TestIntentMessage:
    """Construction, clamping and serialization."""

    def test_rewind_frame_is_compact(self):
        message = IntentMessage.from_payload({"intent": "rewind", "value": 10})

        assert message.to_json() == '{"intent":"rewind","value":10}'

    def test_value_is_omitted_for_valueless_kinds(self):
        assert begin_listen().to_json() == '{"intent":"begin_listen"}'

    def test_agent_response_payload(self):
        message = agent_response("Hello there", "/media/ans-1.mp3")

        assert message.to_payload() == {
            "intent": "agent_response",
            "value": {"text": "Hello there", "audioUrl": "/media/ans-1.mp3"},
        }

    def test_agent_response_from_payload(self):
        message = IntentMessage.from_payload(
            {"intent": "agent_response", "value": {"text": "hi"}}
        )

        assert message.value == AgentResponse(text="hi", audio_url=None)

    def test_non_ascii_text_is_kept(self):
        message = agent_response("Zażółć gęślą jaźń")

        assert "Zażółć" in message.to_json()
        assert "\n" not in message.to_json()

    @pytest.mark.parametrize(
        "kind,value,expected",
        [
            (IntentKind.SET_SPEED, 5, 3.0),
            (IntentKind.SET_SPEED, 0.1, 0.25),
            (IntentKind.SET_VOLUME, -5, 0),
            (IntentKind.SET_VOLUME, 55, 55),
        ],
    )
    def test_ranges_are_clamped(self, kind, value, expected):
        assert IntentMessage.create(kind, value).value == expected

    def test_phrase_is_trimmed(self):
        message = IntentMessage.create("jump_to_phrase", "  the chorus ")

        assert message.value == "the chorus"


@pytest.mark.unit
class TestIntentValidation:
    """Type mismatches are rejected with the offending field."""

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"intent": "rewind", "value": "ten"}, "value"),
            ({"intent": "rewind", "value": True}, "value"),
            ({"intent": "rewind", "value": -3}, "value"),
            ({"intent": "pause", "value": 3}, "value"),
            ({"intent": "jump_to_phrase", "value": "   "}, "value"),
            ({"intent": "agent_response", "value": "text"}, "value"),
            ({"intent": "agent_response", "value": {"text": 4}}, "value.text"),
            ({"intent": "teleport", "value": 1}, "intent"),
            ({"value": 1}, "intent"),
        ],
    )
    def test_rejected(self, payload, field):
        with pytest.raises(ValidationFailed) as excinfo:
            IntentMessage.from_payload(payload)

        assert excinfo.value.field == field

    def test_non_object_payload(self):
        with pytest.raises(ValidationFailed):
            IntentMessage.from_payload(["rewind", 10])

    def test_invalid_json(self):
        with pytest.raises(ValidationFailed, match="invalid JSON"):
            IntentMessage.from_json("{not json")
