"""Tests for the voice command parser."""

import pytest

from voicerewind.daemon.intent_parser import parse_intent
from voicerewind.daemon.intents import IntentKind


@pytest.mark.unit
class TestSeekCommands:
    """Rewind and forward with optional amounts."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("rewind 15 seconds", 15),
            ("go back 2 minutes", 120),
            ("Rewind 15 seconds.", 15),
            ("back 30", 30),
            ("go back twenty five seconds", 25),
            ("go back a minute", 60),
            ("go back a bit", 10),
            ("rewind", 10),
            ("rewind by 1.5 minutes", 90),
        ],
    )
    def test_rewind(self, text, expected):
        intent = parse_intent(text)

        assert intent is not None
        assert intent.kind is IntentKind.REWIND
        assert intent.value == expected

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("skip ahead thirty seconds", 30),
            ("fast forward 1 minute", 60),
            ("forward", 10),
        ],
    )
    def test_forward(self, text, expected):
        intent = parse_intent(text)

        assert intent is not None
        assert intent.kind is IntentKind.FORWARD
        assert intent.value == expected


@pytest.mark.unit
class TestPlaybackCommands:
    """Pause, play, speed and volume."""

    def test_pause_and_play(self):
        assert parse_intent("pause the video").kind is IntentKind.PAUSE
        assert parse_intent("stop").kind is IntentKind.PAUSE
        assert parse_intent("resume").kind is IntentKind.PLAY

    def test_numeric_speed(self):
        intent = parse_intent("set speed to 1.5")

        assert intent.kind is IntentKind.SET_SPEED
        assert intent.value == 1.5

    def test_relative_speed(self):
        assert parse_intent("go faster").value == 1.25
        assert parse_intent("a bit slower").value == 0.75
        assert parse_intent("normal speed").value == 1.0

    def test_speed_is_clamped(self):
        assert parse_intent("speed 8").value == 3.0

    def test_volume_is_clamped_to_100(self):
        intent = parse_intent("set volume to 150")

        assert intent.kind is IntentKind.SET_VOLUME
        assert intent.value == 100

    def test_volume_percent(self):
        assert parse_intent("volume 40%").value == 40

    def test_mute(self):
        intent = parse_intent("mute")

        assert intent.kind is IntentKind.SET_VOLUME
        assert intent.value == 0


@pytest.mark.unit
class TestJumpAndFallthrough:
    """Phrase jumps keep the remainder; everything else is a question."""

    def test_jump_captures_remainder(self):
        intent = parse_intent("jump to where they discuss transformers")

        assert intent.kind is IntentKind.JUMP_TO_PHRASE
        assert intent.value == "where they discuss transformers"

    def test_skip_to_is_a_jump_not_a_forward(self):
        intent = parse_intent("skip to the part about ovens.")

        assert intent.kind is IntentKind.JUMP_TO_PHRASE
        assert intent.value == "the part about ovens"

    @pytest.mark.parametrize(
        "text",
        [
            "what's the capital of France",
            "",
            "   ",
            None,
            "who is the host",
            "what is a backend server",
            "tell me about the background music",
            "why is the skipper angry",
        ],
    )
    def test_unmatched_text_is_conversational(self, text):
        assert parse_intent(text) is None

    def test_parse_is_deterministic(self):
        first = parse_intent("go back 2 minutes")
        second = parse_intent("go back 2 minutes")

        assert first == second
