"""Tests for the agent fallback chain."""

import pytest

from voicerewind.daemon.agent import (
    ERROR_ANSWER,
    AgentService,
    ConversationMemory,
    format_context,
)
from voicerewind.daemon.backends import AnswerSynthesizer, SearchResult
from voicerewind.daemon.conversation.turn import FinalizeReason, TurnResult
from voicerewind.daemon.errors import ConnectionLost, ValidationFailed

BREAD = SearchResult(title="Bread", url="https://bread.example", content="Bread is baked.")


class FakeSessions:
    def __init__(self, result=None, error=None, available=True):
        self.available = available
        self.result = result
        self.error = error
        self.sent = []

    async def send(self, session_id, message, context=None):
        self.sent.append((session_id, message, context))
        if self.error is not None:
            raise self.error
        return self.result


class FakeTranscripts:
    def __init__(self, segments=None, error=None):
        self.segments = segments or []
        self.error = error

    async def get(self, video_id, force_refresh=False):
        if self.error is not None:
            raise self.error
        return self.segments


class FakeSearch:
    def __init__(self, results=None, error=None):
        self.results = results if results is not None else [BREAD]
        self.error = error
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.results


class FakeSpeech:
    def __init__(self, url="/media/ans-9.mp3"):
        self.url = url
        self.texts = []

    async def synthesize(self, text):
        self.texts.append(text)
        return self.url


class RecordingAnswers:
    def __init__(self):
        self.contexts = []

    async def synthesize_answer(self, question, results, context=None):
        self.contexts.append(context)
        return f"Answer to {question}"


@pytest.mark.unit
class TestFormatContext:
    """Transcript excerpts around the playback position."""

    def test_window_around_position(self, segments):
        context = format_context(segments, 60.0)

        assert context.splitlines() == [
            "Video transcript excerpt near t=60s:",
            "[00:00] Welcome back to the channel",
            "[00:04] Today we talk about sourdough",
            "[01:00] First, feed your starter",
        ]

    def test_missing_position_means_start(self, segments):
        assert format_context(segments, None).startswith("Video transcript excerpt near t=0s:")

    def test_nothing_nearby(self, segments):
        assert format_context(segments, 1000.0) is None


@pytest.mark.unit
class TestConversationMemory:
    """Bounded per-session history."""

    def test_keeps_latest_items(self):
        memory = ConversationMemory(max_items=2, max_chars=5)
        memory.add("s", "user", "first question")
        memory.add("s", "assistant", "first answer")
        memory.add("s", "user", "second")

        assert memory.summary("s") == "Assistant: first\nUser: secon"

    def test_sessions_are_separate(self):
        memory = ConversationMemory()
        memory.add("a", "user", "hi")

        assert memory.summary("b") == ""
        memory.clear("a")
        assert len(memory) == 0


@pytest.mark.unit
class TestAgentService:
    """Conversational first, then web search, then an apology."""

    @pytest.mark.asyncio
    async def test_conversational_answer_gets_local_speech(self, segments):
        sessions = FakeSessions(TurnResult(text="It's about bread."))
        speech = FakeSpeech()
        service = AgentService(
            sessions,
            AnswerSynthesizer(None),
            transcripts=FakeTranscripts(segments),
            speech=speech,
        )

        answer = await service.answer("what is this?", "vid00001", 60.0, "tab")

        assert answer.to_dict() == {
            "text": "It's about bread.",
            "audioUrl": "/media/ans-9.mp3",
            "sources": [],
            "method": "elevenlabs_conversational",
        }
        session_id, message, context = sessions.sent[0]
        assert (session_id, message) == ("tab", "what is this?")
        assert "[01:00] First, feed your starter" in context

    @pytest.mark.asyncio
    async def test_agent_audio_is_kept(self):
        sessions = FakeSessions(TurnResult(text="Yes.", audio_url="/media/ans-1.wav"))
        speech = FakeSpeech()
        service = AgentService(sessions, AnswerSynthesizer(None), speech=speech)

        answer = await service.answer("really?")

        assert answer.audio_url == "/media/ans-1.wav"
        assert speech.texts == []

    @pytest.mark.asyncio
    async def test_unconfigured_agent_uses_web_search(self):
        service = AgentService(
            FakeSessions(available=False), AnswerSynthesizer(None), search=FakeSearch()
        )

        answer = await service.answer("how is bread made?")

        assert answer.method == "web_search_fallback"
        assert answer.text == (
            "Based on my search, here's what I found:\n\n"
            "Bread is baked.\n\nSource: Bread - https://bread.example"
        )
        assert answer.sources == [{"i": 1, "title": "Bread", "url": "https://bread.example"}]
        assert answer.audio_url is None

    @pytest.mark.asyncio
    async def test_lost_connection_falls_back(self):
        sessions = FakeSessions(error=ConnectionLost("tab"))
        search = FakeSearch()
        service = AgentService(sessions, AnswerSynthesizer(None), search=search)

        answer = await service.answer("how is bread made?", session_id="tab")

        assert answer.method == "web_search_fallback"
        assert search.queries == ["how is bread made?"]

    @pytest.mark.asyncio
    async def test_empty_turn_falls_back(self):
        sessions = FakeSessions(TurnResult(text="", reason=FinalizeReason.TIMEOUT))
        service = AgentService(sessions, AnswerSynthesizer(None), search=FakeSearch([]))

        answer = await service.answer("anything?")

        assert answer.method == "web_search_fallback"
        assert answer.text == "I could not find relevant information to answer your question."

    @pytest.mark.asyncio
    async def test_broken_fallback_returns_apology(self):
        service = AgentService(
            FakeSessions(available=False),
            AnswerSynthesizer(None),
            search=FakeSearch(error=RuntimeError("search exploded")),
        )

        answer = await service.answer("anything?", session_id="tab")

        assert answer.text == ERROR_ANSWER
        assert answer.method == "error_fallback"
        assert service.memory.summary("tab") == "User: anything?"

    @pytest.mark.asyncio
    async def test_history_reaches_web_fallback(self):
        answers = RecordingAnswers()
        service = AgentService(FakeSessions(available=False), answers, search=FakeSearch())

        await service.answer("first question", session_id="tab")
        await service.answer("second question", session_id="tab")

        assert answers.contexts[0] is None
        assert answers.contexts[1] == (
            "Recent conversation:\nUser: first question\nAssistant: Answer to first question"
        )

    @pytest.mark.asyncio
    async def test_transcript_failure_means_no_context(self):
        sessions = FakeSessions(TurnResult(text="ok"))
        service = AgentService(
            sessions,
            AnswerSynthesizer(None),
            transcripts=FakeTranscripts(error=ValidationFailed("bad id", field="videoId")),
        )

        answer = await service.answer("q", "vid00001", 10.0)

        assert answer.text == "ok"
        assert sessions.sent[0][2] is None
