"""Tests for agent frame decoding and text sanitizing."""

import base64
import json

import pytest

from voicerewind.daemon.conversation.events import (
    EventDecodeError,
    EventKind,
    decode_event,
    pong_frame,
    user_message_frame,
)
from voicerewind.daemon.conversation.sanitize import sanitize_agent_text


@pytest.mark.unit
class TestDecodeEvent:
    """Wire frames map onto a closed set of kinds."""

    def test_partial_text(self, agent_frame):
        event = decode_event(json.dumps(agent_frame("partial", "Hi", is_final=True)))

        assert event.kind is EventKind.TEXT_PARTIAL
        assert event.text == "Hi"
        assert event.is_final is True

    def test_tentative_and_correction(self, agent_frame):
        tentative = decode_event(json.dumps(agent_frame("tentative", "maybe")))
        correction = decode_event(json.dumps(agent_frame("correction", "surely")))

        assert (tentative.kind, tentative.text) == (EventKind.TEXT_TENTATIVE, "maybe")
        assert (correction.kind, correction.text) == (EventKind.TEXT_CORRECTION, "surely")

    def test_audio_is_base64_decoded(self, agent_frame):
        event = decode_event(json.dumps(agent_frame("audio", b"\x01\x02\x03")))

        assert event.kind is EventKind.AUDIO
        assert event.audio == b"\x01\x02\x03"

    def test_legacy_audio_chunk(self):
        frame = {"type": "audio", "audio": {"chunk": base64.b64encode(b"pcm").decode()}}

        assert decode_event(json.dumps(frame)).audio == b"pcm"

    def test_ping_and_metadata(self, agent_frame):
        ping = decode_event(json.dumps(agent_frame("ping", 7)))
        metadata = decode_event(json.dumps(agent_frame("metadata", "conv-1")))

        assert ping.event_id == 7
        assert metadata.conversation_id == "conv-1"

    def test_completion_and_unknown(self, agent_frame):
        assert decode_event(json.dumps(agent_frame("response_completed"))).kind is EventKind.DONE
        unknown = decode_event(json.dumps(agent_frame("user_transcript")))

        assert unknown.kind is EventKind.UNKNOWN
        assert unknown.raw_type == "user_transcript"

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", b"\xff"])
    def test_undecodable(self, raw):
        with pytest.raises(EventDecodeError):
            decode_event(raw)

    def test_outbound_frames(self):
        assert json.loads(pong_frame(3)) == {"type": "pong", "event_id": 3}
        assert json.loads(user_message_frame("hey")) == {"type": "user_message", "text": "hey"}


@pytest.mark.unit
class TestSanitizeAgentText:
    """Tool-call artifacts are removed and prose is kept."""

    def test_fenced_tool_block(self):
        text = "Here you go.\n```tool_code\nprint(web_search.search('x'))\n```\nThe answer is 42."

        assert sanitize_agent_text(text) == "Here you go.\n\nThe answer is 42."

    def test_tool_outputs_blob(self):
        assert sanitize_agent_text('tool_outputs {"a": 1} Final text') == "Final text"

    def test_plain_text_is_unchanged(self):
        assert sanitize_agent_text("Just an answer.") == "Just an answer."

    def test_none(self):
        assert sanitize_agent_text(None) == ""
