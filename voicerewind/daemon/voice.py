"""Turn one captured voice command into a broadcast."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from voicerewind.common.audio import DEFAULT_SAMPLE_RATE, pcm_to_wav
from voicerewind.common.structured_logging import get_logger

from .errors import UpstreamUnavailable
from .intent_parser import parse_intent
from .intents import agent_response, begin_listen, end_listen

if TYPE_CHECKING:
    from .agent import AgentService
    from .broadcast import BroadcastChannel
    from .capture.pipeline import WakeDetection

logger = get_logger(__name__, service_name="voicerewind")

VOICE_SESSION_ID = "voice-session"


class SpeechTranscriber(Protocol):
    async def transcribe(self, wav: bytes) -> str: ...


class VoiceCommandHandler:
    """Transcribe, then either broadcast a playback intent or ask the agent.

    The extension shows a listening indicator between ``begin_listen`` and
    ``end_listen``; ``end_listen`` is sent whatever happens in between.
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        transcriber: SpeechTranscriber,
        agent: AgentService,
        session_id: str = VOICE_SESSION_ID,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
    ) -> None:
        self._channel = channel
        self._transcriber = transcriber
        self._agent = agent
        self.session_id = session_id
        self.sample_rate = sample_rate

    async def on_wake(self, detection: WakeDetection) -> None:
        result = await self._channel.broadcast(begin_listen())
        logger.info(
            "voice.listening",
            keyword=detection.keyword,
            delivered=result.delivered,
            **result.to_dict(),
        )

    async def on_abandoned(self, reason: str) -> None:
        result = await self._channel.broadcast(end_listen())
        logger.info("voice.capture_abandoned", reason=reason, **result.to_dict())

    async def handle(self, pcm: bytes) -> None:
        try:
            text = await self._transcribe(pcm)
            if not text:
                logger.info("voice.no_speech", audio_bytes=len(pcm))
                return

            intent = parse_intent(text)
            if intent is not None:
                result = await self._channel.broadcast(intent)
                logger.info(
                    "voice.intent_dispatched",
                    text=text,
                    intent=intent.kind.value,
                    **result.to_dict(),
                )
                return

            answer = await self._agent.answer(text, session_id=self.session_id)
            if not answer.text and answer.audio_url is None:
                logger.info("voice.agent_silent", text=text, method=answer.method)
                return
            result = await self._channel.broadcast(
                agent_response(answer.text, answer.audio_url)
            )
            logger.info(
                "voice.agent_dispatched",
                text=text,
                method=answer.method,
                **result.to_dict(),
            )
        finally:
            result = await self._channel.broadcast(end_listen())
            logger.debug("voice.listening_ended", **result.to_dict())

    async def _transcribe(self, pcm: bytes) -> str:
        try:
            return (await self._transcriber.transcribe(pcm_to_wav(pcm, self.sample_rate))).strip()
        except UpstreamUnavailable as exc:
            logger.warning("voice.transcription_failed", error=str(exc))
            return ""


__all__ = ["VOICE_SESSION_ID", "SpeechTranscriber", "VoiceCommandHandler"]
