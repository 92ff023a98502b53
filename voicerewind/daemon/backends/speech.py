"""HTTP client for ElevenLabs text-to-speech."""

from __future__ import annotations

import asyncio
import time

import httpx

from voicerewind.common.structured_logging import get_logger

from ..conversation.turn import MediaSink
from .conversation import DEFAULT_API_BASE

logger = get_logger(__name__, service_name="voicerewind")

DEFAULT_TTS_MODEL = "eleven_multilingual_v2"
VOICE_SETTINGS = {"stability": 0.5, "similarity_boost": 0.75}


class ElevenLabsSpeech:
    """Synthesizes answers to mp3 files served from the media route."""

    def __init__(
        self,
        api_key: str,
        voice_id: str,
        http_client: httpx.AsyncClient,
        media: MediaSink,
        model_id: str = DEFAULT_TTS_MODEL,
        api_base: str = DEFAULT_API_BASE,
    ) -> None:
        self.voice_id = voice_id
        self.model_id = model_id
        self.api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._http = http_client
        self._media = media
        self._logger = logger

        self._logger.info(
            "speech_client.initialized", voice_id=voice_id, model_id=model_id
        )

    async def synthesize(self, text: str) -> str | None:
        """Synthesize ``text`` and return its media URL.

        Returns:
            URL path of the saved mp3, or None if synthesis failed
        """
        text = text.strip()
        if not text:
            return None

        start_time = time.time()
        try:
            response = await self._http.post(
                f"{self.api_base}/v1/text-to-speech/{self.voice_id}/stream",
                headers={"xi-api-key": self._api_key, "accept": "audio/mpeg"},
                json={
                    "text": text,
                    "model_id": self.model_id,
                    "voice_settings": VOICE_SETTINGS,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            self._logger.error(
                "speech_client.synthesis_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                processing_time_ms=(time.time() - start_time) * 1000,
            )
            return None

        audio = response.content
        if not audio:
            self._logger.error("speech_client.synthesis_missing_audio")
            return None

        try:
            url = await asyncio.to_thread(self._media.save_media, audio, "mp3")
        except OSError as exc:
            self._logger.error("speech_client.media_write_failed", error=str(exc))
            return None

        self._logger.info(
            "speech_client.synthesis_completed",
            text_length=len(text),
            audio_size=len(audio),
            processing_time_ms=(time.time() - start_time) * 1000,
            url=url,
        )
        return url


__all__ = ["ElevenLabsSpeech"]
