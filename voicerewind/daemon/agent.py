"""Answering free-form questions about (or beyond) the current video.

The conversational agent is asked first. When it is not configured or the
turn fails, the question is answered from a web search instead, and when that
path breaks too the caller still receives an apologetic text.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from voicerewind.common.structured_logging import get_logger, session_context

from .backends.search import format_sources
from .errors import ConfigurationMissing, ConnectionLost, UpstreamUnavailable, VoiceRewindError
from .validation import DEFAULT_SESSION_ID

if TYPE_CHECKING:
    from .backends.answer import AnswerSynthesizer
    from .backends.search import TavilySearch
    from .backends.speech import ElevenLabsSpeech
    from .conversation.registry import SessionRegistry
    from .transcripts import TranscriptSegment, TranscriptStore

logger = get_logger(__name__, service_name="voicerewind")

CONTEXT_WINDOW_SECONDS = 90
CONTEXT_MAX_SEGMENTS = 20
ERROR_ANSWER = "Sorry, I couldn't answer that right now. Please try again in a moment."

METHOD_CONVERSATIONAL = "elevenlabs_conversational"
METHOD_WEB_SEARCH = "web_search_fallback"
METHOD_ERROR = "error_fallback"


@dataclass(slots=True)
class AgentAnswer:
    text: str
    audio_url: str | None = None
    sources: list[dict[str, Any]] = field(default_factory=list)
    method: str = METHOD_CONVERSATIONAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "audioUrl": self.audio_url,
            "sources": self.sources,
            "method": self.method,
        }


class ConversationMemory:
    """The last few exchanges of every session, oldest first."""

    def __init__(self, max_items: int = 6, max_chars: int = 800) -> None:
        self.max_items = max_items
        self.max_chars = max_chars
        self._items: dict[str, deque[tuple[str, str]]] = {}

    def add(self, session_id: str, role: str, text: str) -> None:
        if self.max_items <= 0 or not text:
            return
        items = self._items.setdefault(session_id, deque(maxlen=self.max_items))
        items.append((role, text[: self.max_chars]))

    def summary(self, session_id: str) -> str:
        return "\n".join(
            f"{'User' if role == 'user' else 'Assistant'}: {text}"
            for role, text in self._items.get(session_id, ())
        )

    def clear(self, session_id: str) -> None:
        self._items.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._items)


def _timestamp(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def format_context(
    segments: Sequence[TranscriptSegment], current_time: float | None
) -> str | None:
    """Transcript lines within 90 seconds of ``current_time``, or None."""
    position = current_time or 0.0
    nearby = [
        segment
        for segment in segments
        if abs(segment.start - position) <= CONTEXT_WINDOW_SECONDS
    ][:CONTEXT_MAX_SEGMENTS]
    if not nearby:
        return None
    lines = "\n".join(f"[{_timestamp(segment.start)}] {segment.text}" for segment in nearby)
    return f"Video transcript excerpt near t={int(position)}s:\n{lines}"


class AgentService:
    """Runs the conversational, web search and error fallback chain."""

    def __init__(
        self,
        sessions: SessionRegistry,
        answers: AnswerSynthesizer,
        *,
        transcripts: TranscriptStore | None = None,
        search: TavilySearch | None = None,
        speech: ElevenLabsSpeech | None = None,
        memory: ConversationMemory | None = None,
    ) -> None:
        self.sessions = sessions
        self.answers = answers
        self.transcripts = transcripts
        self.search = search
        self.speech = speech
        self.memory = memory or ConversationMemory()

    async def build_context(
        self, video_id: str | None, current_time: float | None
    ) -> str | None:
        if not video_id or self.transcripts is None:
            return None
        try:
            segments = await self.transcripts.get(video_id)
        except (VoiceRewindError, OSError) as exc:
            logger.warning("agent.context_unavailable", video_id=video_id, error=str(exc))
            return None
        return format_context(segments, current_time)

    async def answer(
        self,
        query: str,
        video_id: str | None = None,
        current_time: float | None = None,
        session_id: str = DEFAULT_SESSION_ID,
    ) -> AgentAnswer:
        """Answer ``query``; never raises for backend failures."""
        with session_context(session_id):
            return await self._answer(query, video_id, current_time, session_id)

    async def _answer(
        self,
        query: str,
        video_id: str | None,
        current_time: float | None,
        session_id: str,
    ) -> AgentAnswer:
        context = await self.build_context(video_id, current_time)
        history = self.memory.summary(session_id)
        self.memory.add(session_id, "user", query)

        result = await self._ask_agent(query, context, session_id)
        if result is None:
            try:
                result = await self._answer_from_web(query, context, history)
            except Exception as exc:
                logger.error(
                    "agent.fallback_failed",
                    session_id=session_id,
                    error=str(exc),
                    exc_info=True,
                )
                result = AgentAnswer(text=ERROR_ANSWER, method=METHOD_ERROR)

        if result.method != METHOD_ERROR:
            self.memory.add(session_id, "assistant", result.text)
        logger.info(
            "agent.answered",
            session_id=session_id,
            method=result.method,
            has_audio=result.audio_url is not None,
            sources=len(result.sources),
            has_context=context is not None,
        )
        return result

    async def _ask_agent(
        self, query: str, context: str | None, session_id: str
    ) -> AgentAnswer | None:
        if not self.sessions.available:
            return None
        try:
            turn = await self.sessions.send(session_id, query, context)
        except (ConfigurationMissing, UpstreamUnavailable, ConnectionLost) as exc:
            logger.warning(
                "agent.conversation_failed",
                session_id=session_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        if not turn.text and turn.audio_url is None:
            logger.warning(
                "agent.conversation_empty", session_id=session_id, reason=turn.reason.value
            )
            return None

        audio_url = turn.audio_url
        if audio_url is None and turn.text and self.speech is not None:
            audio_url = await self.speech.synthesize(turn.text)
        return AgentAnswer(text=turn.text, audio_url=audio_url, method=METHOD_CONVERSATIONAL)

    async def _answer_from_web(
        self, query: str, context: str | None, history: str
    ) -> AgentAnswer:
        results = await self.search.search(query) if self.search is not None else []
        extra = "\n\n".join(
            part
            for part in (context, f"Recent conversation:\n{history}" if history else None)
            if part
        )
        text = await self.answers.synthesize_answer(query, results, extra or None)
        audio_url = await self.speech.synthesize(text) if self.speech is not None else None
        return AgentAnswer(
            text=text,
            audio_url=audio_url,
            sources=format_sources(results),
            method=METHOD_WEB_SEARCH,
        )


__all__ = [
    "AgentAnswer",
    "AgentService",
    "ConversationMemory",
    "ERROR_ANSWER",
    "format_context",
]
