"""Speech-to-text through the OpenAI transcription API."""

from __future__ import annotations

import time
from typing import Any

import openai
from openai import AsyncOpenAI

from voicerewind.common.structured_logging import get_logger

from ..errors import UpstreamUnavailable
from ..transcripts import TranscriptSegment

logger = get_logger(__name__, service_name="voicerewind")

DEFAULT_TRANSCRIBE_MODEL = "whisper-1"


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


class OpenAITranscriber:
    """Transcribes WAV bytes, either as plain text or as timed segments."""

    def __init__(self, client: AsyncOpenAI, model: str = DEFAULT_TRANSCRIBE_MODEL) -> None:
        self.model = model
        self._client = client
        self._logger = logger

    async def _create(self, wav: bytes, response_format: str) -> Any:
        start_time = time.time()
        try:
            result = await self._client.audio.transcriptions.create(
                file=("speech.wav", wav),
                model=self.model,
                response_format=response_format,
            )
        except openai.OpenAIError as exc:
            self._logger.error(
                "transcriber.request_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                audio_bytes=len(wav),
            )
            raise UpstreamUnavailable("openai_transcription", str(exc)) from exc

        self._logger.debug(
            "transcriber.request_completed",
            audio_bytes=len(wav),
            response_format=response_format,
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        return result

    async def transcribe(self, wav: bytes) -> str:
        """Return the text spoken in ``wav``.

        Raises:
            UpstreamUnavailable: the API call failed
        """
        result = await self._create(wav, "json")
        text = _field(result, "text", "") or ""
        return str(text).strip()

    async def transcribe_segments(self, wav: bytes) -> list[TranscriptSegment]:
        """Return timed segments for ``wav`` using the verbose response format."""
        result = await self._create(wav, "verbose_json")
        segments = []
        for item in _field(result, "segments", None) or []:
            text = str(_field(item, "text", "")).strip()
            if not text:
                continue
            start = float(_field(item, "start", 0.0))
            end = float(_field(item, "end", start))
            segments.append(
                TranscriptSegment(text=text, start=start, duration=max(end - start, 0.0))
            )
        return segments


__all__ = ["OpenAITranscriber"]
