"""Composition root: builds every component from configuration and owns their lifecycle."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterable, Callable
from datetime import datetime, timezone
from typing import Any

import httpx
from openai import AsyncOpenAI

from voicerewind.common.config import DaemonConfig
from voicerewind.common.health import HealthManager
from voicerewind.common.structured_logging import get_logger

from .agent import AgentService, ConversationMemory
from .backends import (
    AnswerSynthesizer,
    ElevenLabsConnector,
    ElevenLabsSpeech,
    OpenAIEmbedder,
    OpenAITranscriber,
    TavilySearch,
)
from .broadcast import BroadcastChannel
from .cache import CacheStore
from .capture import WakeCapturePipeline, WakeSpotter
from .conversation import SessionRegistry, TurnPolicy
from .conversation.registry import AgentConnector
from .errors import ConfigurationMissing
from .semantic import SemanticMatch, SemanticMatcher, find_literal
from .transcripts import TranscriptSegment, TranscriptStore
from .voice import VoiceCommandHandler

logger = get_logger(__name__, service_name="voicerewind")

SERVICE_NAME = "voicerewind"


class Daemon:
    """Owns the broadcast channel, session registry, caches and backends.

    Backends whose credentials are missing are simply not built; callers see
    ``None`` and take their fallback path. Clients passed in by the caller are
    not closed on shutdown.
    """

    def __init__(
        self,
        config: DaemonConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        openai_client: AsyncOpenAI | None = None,
        connector: AgentConnector | None = None,
        audio_source: AsyncIterable[bytes] | None = None,
        spotter: WakeSpotter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.health = HealthManager(SERVICE_NAME)
        self.channel = BroadcastChannel(clock)
        self.cache = CacheStore(config.cache.cache_dir, clock)

        providers = config.providers
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=providers.http_timeout, follow_redirects=True
        )
        self._owns_openai = openai_client is None
        if openai_client is None and providers.has_openai:
            openai_client = AsyncOpenAI(
                api_key=providers.openai_api_key, timeout=providers.http_timeout
            )
        self._openai = openai_client

        self.transcriber = (
            OpenAITranscriber(self._openai, providers.transcribe_model)
            if self._openai is not None
            else None
        )
        self.transcripts = TranscriptStore(self.cache, self._http, self.transcriber)
        self.matcher = (
            SemanticMatcher(
                OpenAIEmbedder(self._openai, providers.embedding_model), self.cache
            )
            if self._openai is not None
            else None
        )
        self.search = (
            TavilySearch(providers.tavily_api_key, self._http)
            if providers.has_tavily
            else None
        )
        self.answers = AnswerSynthesizer(self._openai, providers.chat_model)
        self.speech = (
            ElevenLabsSpeech(
                providers.elevenlabs_api_key,
                providers.elevenlabs_voice_id,
                self._http,
                self.cache,
                model_id=providers.tts_model,
                api_base=providers.elevenlabs_api_base,
            )
            if providers.has_elevenlabs
            else None
        )

        if connector is None and providers.has_conversation:
            connector = ElevenLabsConnector(
                providers.elevenlabs_api_key,
                providers.elevenlabs_agent_id,
                self._http,
                api_base=providers.elevenlabs_api_base,
            )
        self.sessions = SessionRegistry(
            connector, TurnPolicy.from_config(config.turn), self.cache
        )
        self.memory = ConversationMemory(
            config.cache.max_session_memory, config.cache.session_memory_chars
        )
        self.agent = AgentService(
            self.sessions,
            self.answers,
            transcripts=self.transcripts,
            search=self.search,
            speech=self.speech,
            memory=self.memory,
        )
        self.voice = (
            VoiceCommandHandler(
                self.channel,
                self.transcriber,
                self.agent,
                sample_rate=config.audio.sample_rate,
            )
            if self.transcriber is not None
            else None
        )

        self.pipeline: WakeCapturePipeline | None = None
        self._audio_source = audio_source
        self._spotter = spotter
        self._microphone: Any = None
        self._heartbeat_task: asyncio.Task[None] | None = None

    def feature_flags(self) -> dict[str, bool]:
        return self.config.feature_flags()

    async def start(self) -> None:
        self.cache.ensure_dirs()
        self._report_unconfigured()

        self.health.register_dependency("openai", lambda: self._openai is not None)
        self.health.register_dependency("elevenlabs", lambda: self.speech is not None)
        self.health.register_dependency("conversation", lambda: self.sessions.available)
        self.health.register_dependency("tavily", lambda: self.search is not None)
        self.health.register_dependency(
            "wake_pipeline", lambda: self.pipeline is not None and self.pipeline.running
        )

        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(), name="broadcast-heartbeat"
        )
        await self._start_capture()
        self.health.mark_startup_complete()
        logger.info(
            "daemon.started",
            host=self.config.http.host,
            port=self.config.http.port,
            cache_dir=str(self.cache.root),
            **self.feature_flags(),
        )

    async def shutdown(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            await asyncio.gather(self._heartbeat_task, return_exceptions=True)
            self._heartbeat_task = None

        if self.pipeline is not None:
            await self.pipeline.stop()
            self.pipeline = None
        if self._microphone is not None:
            self._microphone.close()
            self._microphone = None

        await self.channel.close()
        await self.sessions.close_all()

        if self._owns_http:
            await self._http.aclose()
        if self._owns_openai and self._openai is not None:
            await self._openai.close()
        logger.info("daemon.stopped")

    async def semantic_search(
        self,
        video_id: str,
        segments: list[TranscriptSegment],
        query: str,
        force: bool = False,
    ) -> SemanticMatch:
        """Literal match, then embeddings when OpenAI is configured."""
        if self.matcher is None:
            return find_literal(segments, query) or SemanticMatch.empty()
        return await self.matcher.search(video_id, segments, query, force=force)

    async def health_payload(self) -> dict[str, Any]:
        check = await self.health.get_health_status()
        providers = self.config.providers
        pipeline = self.pipeline
        return {
            "ok": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": check.status.value,
            "ready": check.ready,
            "config": {
                **self.feature_flags(),
                "embeddingModel": providers.embedding_model,
                "chatModel": providers.chat_model,
            },
            "cache": self.cache.stats(),
            "clients": self.channel.stats(),
            "sessions": self.sessions.stats(),
            "pipeline": {
                "running": pipeline is not None and pipeline.running,
                "detections": pipeline.detections if pipeline else 0,
                "commands": pipeline.commands_handled if pipeline else 0,
            },
            "details": check.details,
        }

    def _report_unconfigured(self) -> None:
        providers = self.config.providers
        missing = [
            ConfigurationMissing(component, setting)
            for component, setting, present in (
                ("openai", "OPENAI_API_KEY", providers.has_openai),
                ("elevenlabs", "ELEVENLABS_API_KEY", providers.has_elevenlabs),
                ("conversation", "ELEVENLABS_AGENT_ID", providers.has_conversation),
                ("tavily", "TAVILY_API_KEY", providers.has_tavily),
            )
            if not present
        ]
        for error in missing:
            logger.warning(
                "daemon.backend_unconfigured",
                component=error.component,
                setting=error.setting,
            )

    async def _start_capture(self) -> None:
        audio = self.config.audio
        if not audio.enabled:
            self._capture_unavailable(ConfigurationMissing("wake_pipeline", "ENABLE_AUDIO"))
            return
        if self.voice is None:
            self._capture_unavailable(ConfigurationMissing("wake_pipeline", "OPENAI_API_KEY"))
            return

        try:
            spotter = self._spotter
            if spotter is None:
                from .capture.wake import OpenWakeWordSpotter

                spotter = await asyncio.to_thread(OpenWakeWordSpotter.from_config, audio)
            source = self._audio_source
            if source is None:
                from .capture.microphone import MicrophoneSource

                microphone = MicrophoneSource(
                    audio.sample_rate, spotter.frame_length, audio.device
                )
                microphone.open()
                self._microphone = source = microphone
        except Exception as exc:
            self._capture_unavailable(exc)
            return

        self.pipeline = WakeCapturePipeline(
            source,
            spotter,
            self.voice,
            capture_seconds=audio.capture_seconds,
            sample_rate=audio.sample_rate,
        )
        self.pipeline.start()

    def _capture_unavailable(self, error: Exception) -> None:
        logger.warning(
            "daemon.wake_pipeline_unavailable",
            error=str(error),
            error_type=type(error).__name__,
        )
        self.health.record_startup_failure(
            error=error, component="wake_pipeline", is_critical=False
        )

    async def _heartbeat_loop(self) -> None:
        interval = self.config.http.heartbeat_interval
        while True:
            await asyncio.sleep(interval)
            result = await self.channel.ping_all()
            logger.debug("daemon.heartbeat", **result.to_dict())


__all__ = ["SERVICE_NAME", "Daemon"]
