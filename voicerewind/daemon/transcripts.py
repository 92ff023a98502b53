"""Transcript segments for a YouTube video.

Sources in priority order: the on-disk cache, YouTube's caption track (several
language codes), then a machine transcription of the first seconds of audio.
"""

from __future__ import annotations

import asyncio
import html
import shutil
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from voicerewind.common.audio import pcm_to_wav
from voicerewind.common.structured_logging import get_logger

from .errors import UpstreamUnavailable
from .validation import validate_video_id

if TYPE_CHECKING:
    from .cache import CacheStore

logger = get_logger(__name__, service_name="voicerewind")

TIMEDTEXT_URL = "https://www.youtube.com/api/timedtext"
CAPTION_LANGUAGES: tuple[str, ...] = ("en", "en-US", "en-GB", "pl", "es", "de", "fr")
SAMPLE_SECONDS = 10
SAMPLE_TIMEOUT = 90.0


@dataclass(slots=True, frozen=True)
class TranscriptSegment:
    """A timestamped span of transcript text, in seconds."""

    text: str
    start: float
    duration: float

    @property
    def end(self) -> float:
        return self.start + self.duration

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "start": self.start, "duration": self.duration}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptSegment:
        return cls(
            text=str(data.get("text", "")),
            start=float(data.get("start", 0.0)),
            duration=float(data.get("duration", data.get("dur", 0.0))),
        )


class SegmentTranscriber(Protocol):
    async def transcribe_segments(self, wav: bytes) -> list[TranscriptSegment]: ...


def parse_timedtext(xml_text: str) -> list[TranscriptSegment]:
    """Parse YouTube timedtext XML.

    Handles the classic ``<text start= dur=>`` format (seconds) and the
    ``<p t= d=>`` srv3 format (milliseconds). Empty lines are dropped.
    """
    if not xml_text.strip():
        return []
    root = ET.fromstring(xml_text)
    segments: list[TranscriptSegment] = []
    for element in root.iter():
        if element.tag == "text":
            start = float(element.get("start", 0.0))
            duration = float(element.get("dur", 0.0))
        elif element.tag == "p":
            start = float(element.get("t", 0)) / 1000.0
            duration = float(element.get("d", 0)) / 1000.0
        else:
            continue
        # caption text is frequently entity-escaped twice
        text = html.unescape("".join(element.itertext())).replace("\n", " ").strip()
        if text:
            segments.append(TranscriptSegment(text=text, start=start, duration=duration))
    return segments


class TranscriptStore:
    """Fetches, caches and clears transcripts."""

    def __init__(
        self,
        cache: CacheStore,
        http_client: httpx.AsyncClient,
        transcriber: SegmentTranscriber | None = None,
        languages: tuple[str, ...] = CAPTION_LANGUAGES,
    ) -> None:
        self._cache = cache
        self._http = http_client
        self._transcriber = transcriber
        self._languages = languages

    def has(self, video_id: str) -> bool:
        return self._cache.has_transcript(validate_video_id(video_id))

    def clear(self, video_id: str) -> dict[str, bool]:
        return self._cache.clear(validate_video_id(video_id))

    async def get(self, video_id: str, force_refresh: bool = False) -> list[TranscriptSegment]:
        """Return segments for ``video_id``; ``force_refresh`` skips the cache."""
        video_id = validate_video_id(video_id)
        if not force_refresh:
            cached = self._cache.read_transcript(video_id)
            if cached:
                logger.debug("transcripts.cache_hit", video_id=video_id, segments=len(cached))
                return cached

        segments = await self.fetch_captions(video_id)
        source = "captions"
        if not segments:
            segments = await self._transcribe_sample(video_id)
            source = "transcription"

        if segments:
            self._cache.write_transcript(video_id, segments)
        logger.info(
            "transcripts.fetched",
            video_id=video_id,
            segments=len(segments),
            source=source if segments else None,
        )
        return segments

    async def fetch_captions(self, video_id: str) -> list[TranscriptSegment]:
        attempts: list[dict[str, str]] = [
            {"lang": lang, "v": video_id} for lang in self._languages
        ]
        attempts.append({"lang": "en", "v": video_id, "kind": "asr"})

        for params in attempts:
            try:
                response = await self._http.get(TIMEDTEXT_URL, params=params)
                response.raise_for_status()
                segments = parse_timedtext(response.text)
            except (httpx.HTTPError, ET.ParseError) as exc:
                logger.debug(
                    "transcripts.caption_attempt_failed",
                    video_id=video_id,
                    params=params,
                    error=str(exc),
                )
                continue
            if segments:
                logger.debug(
                    "transcripts.captions_found",
                    video_id=video_id,
                    lang=params["lang"],
                    kind=params.get("kind"),
                )
                return segments
        return []

    async def _transcribe_sample(self, video_id: str) -> list[TranscriptSegment]:
        if self._transcriber is None:
            logger.debug("transcripts.transcription_unavailable", video_id=video_id)
            return []
        try:
            pcm = await download_audio_sample(video_id)
            return await self._transcriber.transcribe_segments(pcm_to_wav(pcm))
        except UpstreamUnavailable as exc:
            logger.warning(
                "transcripts.transcription_failed", video_id=video_id, error=str(exc)
            )
            return []


async def _run(*args: str, timeout: float) -> bytes:
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise UpstreamUnavailable(args[0], f"timed out after {timeout}s") from None
    if process.returncode != 0:
        message = stderr.decode(errors="replace").strip().splitlines()
        raise UpstreamUnavailable(args[0], message[-1] if message else "failed")
    return stdout


async def download_audio_sample(
    video_id: str, seconds: int = SAMPLE_SECONDS, timeout: float = SAMPLE_TIMEOUT
) -> bytes:
    """Return the first ``seconds`` of a video's audio as 16 kHz mono PCM.

    Needs ``yt-dlp`` and ``ffmpeg`` on PATH.
    """
    yt_dlp = shutil.which("yt-dlp")
    ffmpeg = shutil.which("ffmpeg")
    if yt_dlp is None or ffmpeg is None:
        raise UpstreamUnavailable("audio_sample", "yt-dlp and ffmpeg must be on PATH")

    stream_url = (
        await _run(
            yt_dlp,
            "--quiet",
            "--format",
            "bestaudio",
            "--get-url",
            f"https://www.youtube.com/watch?v={video_id}",
            timeout=timeout,
        )
    ).decode().strip().splitlines()
    if not stream_url:
        raise UpstreamUnavailable("yt-dlp", "no audio stream")

    pcm = await _run(
        ffmpeg,
        "-nostdin",
        "-loglevel",
        "error",
        "-t",
        str(seconds),
        "-i",
        stream_url[0],
        "-ac",
        "1",
        "-ar",
        "16000",
        "-f",
        "s16le",
        "pipe:1",
        timeout=timeout,
    )
    if not pcm:
        raise UpstreamUnavailable("ffmpeg", "decoded no audio")
    return pcm


__all__ = [
    "CAPTION_LANGUAGES",
    "TranscriptSegment",
    "TranscriptStore",
    "download_audio_sample",
    "parse_timedtext",
]
