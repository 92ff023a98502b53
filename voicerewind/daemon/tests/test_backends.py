"""Tests for the HTTP and OpenAI backend clients."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from voicerewind.daemon.backends import (
    AnswerSynthesizer,
    ElevenLabsConnector,
    ElevenLabsSpeech,
    OpenAIEmbedder,
    OpenAITranscriber,
    SearchResult,
    TavilySearch,
    format_sources,
)
from voicerewind.daemon.backends import conversation as conversation_backend
from voicerewind.daemon.backends.answer import build_user_prompt, fallback_answer
from voicerewind.daemon.errors import UpstreamUnavailable


def mock_http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def signed_url_ok(request):
    return httpx.Response(200, json={"signed_url": "wss://a/ws"})


def chat_client(content=None, error=None):
    create = AsyncMock()
    if error is not None:
        create.side_effect = error
    else:
        message = SimpleNamespace(content=content)
        create.return_value = SimpleNamespace(choices=[SimpleNamespace(message=message)])
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.mark.unit
class TestTavilySearch:
    """Request shape and failure handling."""

    @pytest.mark.asyncio
    async def test_search_parses_results(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={"results": [{"title": "Bread", "url": "https://b.example", "content": "Yum"}]},
            )

        async with mock_http(handler) as client:
            results = await TavilySearch("tvly-key", client).search("sourdough")

        assert results == [SearchResult(title="Bread", url="https://b.example", content="Yum")]
        assert seen[0] == {
            "api_key": "tvly-key",
            "query": "sourdough",
            "search_depth": "basic",
            "max_results": 5,
            "include_answer": False,
        }

    @pytest.mark.asyncio
    async def test_http_error_yields_no_results(self):
        async with mock_http(lambda request: httpx.Response(500)) as client:
            assert await TavilySearch("tvly-key", client).search("sourdough") == []

    def test_format_sources_defaults(self):
        sources = format_sources([SearchResult(title="", url="", content="x")])

        assert sources == [{"i": 1, "title": "Untitled", "url": "#"}]


@pytest.mark.unit
class TestAnswerSynthesizer:
    """Chat completion with deterministic fallbacks."""

    def test_fallback_truncates_summary(self):
        result = SearchResult(title="T", url="https://t.example", content="x" * 250)

        text = fallback_answer([result])

        assert ("x" * 200 + "...") in text
        assert text.endswith("Source: T - https://t.example")

    def test_prompt_lists_numbered_results(self):
        prompt = build_user_prompt(
            "Why?", [SearchResult(title="A", url="https://a.example", content="because")]
        )

        assert prompt == (
            "Question: Why?\nVideo context: (none)\nWeb results:\n"
            "[1] A - https://a.example\nbecause"
        )

    @pytest.mark.asyncio
    async def test_uses_completion_text(self):
        client = chat_client(content="  Because [1].  ")
        synthesizer = AnswerSynthesizer(client, model="gpt-4o-mini")

        text = await synthesizer.synthesize_answer("Why?", [], "Video context here")

        assert text == "Because [1]."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert "Video context:\nVideo context here" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "client", [chat_client(error=openai.OpenAIError("rate limited")), chat_client(content="")]
    )
    async def test_failures_fall_back(self, client):
        text = await AnswerSynthesizer(client).synthesize_answer("Why?", [])

        assert text == "I could not find relevant information to answer your question."


@pytest.mark.unit
class TestOpenAIClients:
    """Transcription and embeddings wrappers."""

    @pytest.mark.asyncio
    async def test_transcribe_returns_text(self):
        create = AsyncMock(return_value=SimpleNamespace(text=" rewind ten seconds "))
        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))

        text = await OpenAITranscriber(client).transcribe(b"RIFF")

        assert text == "rewind ten seconds"
        assert create.call_args.kwargs["response_format"] == "json"

    @pytest.mark.asyncio
    async def test_transcribe_segments(self):
        response = {
            "segments": [
                {"text": " Hello ", "start": 0.0, "end": 1.5},
                {"text": "   ", "start": 1.5, "end": 2.0},
                {"text": "world", "start": 2.0, "end": 3.0},
            ]
        }
        create = AsyncMock(return_value=response)
        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))

        segments = await OpenAITranscriber(client).transcribe_segments(b"RIFF")

        assert [(s.text, s.start, s.duration) for s in segments] == [
            ("Hello", 0.0, 1.5),
            ("world", 2.0, 1.0),
        ]

    @pytest.mark.asyncio
    async def test_transcription_error(self):
        create = AsyncMock(side_effect=openai.OpenAIError("down"))
        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))

        with pytest.raises(UpstreamUnavailable):
            await OpenAITranscriber(client).transcribe(b"RIFF")

    @pytest.mark.asyncio
    async def test_embeddings_keep_input_order(self):
        data = [
            SimpleNamespace(index=1, embedding=[0.0, 1.0]),
            SimpleNamespace(index=0, embedding=[1.0, 0.0]),
        ]
        create = AsyncMock(return_value=SimpleNamespace(data=data))
        client = SimpleNamespace(embeddings=SimpleNamespace(create=create))
        embedder = OpenAIEmbedder(client, model="text-embedding-3-small")

        vectors = await embedder.embed(["a", "b"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert await embedder.embed([]) == []
        assert create.await_count == 1


@pytest.mark.unit
class TestElevenLabs:
    """Speech synthesis and the conversational handshake."""

    @pytest.mark.asyncio
    async def test_speech_saves_mp3(self, cache_store):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"ID3audio")

        async with mock_http(handler) as client:
            speech = ElevenLabsSpeech("xi-key", "voice-1", client, cache_store)
            url = await speech.synthesize(" Hello ")

        assert url.startswith("/media/ans-") and url.endswith(".mp3")
        assert seen[0].url.path == "/v1/text-to-speech/voice-1/stream"
        assert seen[0].headers["xi-api-key"] == "xi-key"
        assert json.loads(seen[0].content)["text"] == "Hello"

    @pytest.mark.asyncio
    async def test_speech_failures_return_none(self, cache_store):
        async with mock_http(lambda request: httpx.Response(401)) as client:
            speech = ElevenLabsSpeech("xi-key", "voice-1", client, cache_store)

            assert await speech.synthesize("Hello") is None
            assert await speech.synthesize("   ") is None

    @pytest.mark.asyncio
    async def test_signed_url_tries_both_spellings(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path.endswith("get-signed-url"):
                return httpx.Response(404)
            assert request.url.params["agent_id"] == "agent-7"
            return httpx.Response(200, json={"signed_url": "wss://agent.example/ws?token=t"})

        async with mock_http(handler) as client:
            url = await ElevenLabsConnector("xi-key", "agent-7", client).signed_url()

        assert url == "wss://agent.example/ws?token=t"
        assert paths == [
            "/v1/convai/conversation/get-signed-url",
            "/v1/convai/conversation/get_signed_url",
        ]

    @pytest.mark.asyncio
    async def test_signed_url_failure(self):
        async with mock_http(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(UpstreamUnavailable):
                await ElevenLabsConnector("xi-key", "agent-7", client).signed_url()

    @pytest.mark.asyncio
    async def test_connect_wraps_handshake_errors(self, monkeypatch):
        async def refuse(url, **kwargs):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(conversation_backend, "connect", refuse)

        async with mock_http(signed_url_ok) as client:
            with pytest.raises(UpstreamUnavailable):
                await ElevenLabsConnector("xi-key", "agent-7", client).connect()

    @pytest.mark.asyncio
    async def test_connect_passes_key_header(self, monkeypatch):
        calls = []
        connection = object()

        async def fake_connect(url, **kwargs):
            calls.append((url, kwargs))
            return connection

        monkeypatch.setattr(conversation_backend, "connect", fake_connect)

        async with mock_http(signed_url_ok) as client:
            result = await ElevenLabsConnector("xi-key", "agent-7", client).connect()

        assert result is connection
        assert calls[0][0] == "wss://a/ws"
        assert calls[0][1]["additional_headers"] == {"xi-api-key": "xi-key"}
