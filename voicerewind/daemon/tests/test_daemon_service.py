"""Tests for the daemon composition root."""

import asyncio
from types import SimpleNamespace

import pytest
from freezegun import freeze_time

from voicerewind.common.config import DaemonConfig
from voicerewind.daemon.service import Daemon


class SilentSpotter:
    frame_length = 1280

    def process(self, frame):
        return None

    def reset(self):
        pass


def make_config(tmp_path, **overrides):
    return DaemonConfig.from_env(cache={"cache_dir": str(tmp_path / "cache")}, **overrides)


@pytest.mark.component
class TestDaemonLifecycle:
    """Startup wiring, optional capture and shutdown."""

    @pytest.mark.asyncio
    async def test_unconfigured_daemon_starts_degraded(self, clean_env, tmp_path):
        daemon = Daemon(make_config(tmp_path))

        await daemon.start()
        payload = await daemon.health_payload()
        await daemon.shutdown()

        assert payload["ready"] is True
        assert payload["status"] == "degraded"
        assert payload["details"]["startup_failures"][0]["component"] == "wake_pipeline"
        assert daemon.transcriber is None
        assert daemon.matcher is None
        assert daemon.voice is None
        assert (tmp_path / "cache" / "transcripts").is_dir()

    @pytest.mark.asyncio
    async def test_capture_pipeline_runs_with_injected_audio(self, clean_env, tmp_path):
        stop = asyncio.Event()

        async def microphone():
            await stop.wait()
            yield b""

        daemon = Daemon(
            make_config(tmp_path, audio={"enabled": True}),
            openai_client=SimpleNamespace(),
            audio_source=microphone(),
            spotter=SilentSpotter(),
        )

        await daemon.start()
        running = (await daemon.health_payload())["pipeline"]["running"]
        await daemon.shutdown()

        assert running is True
        assert daemon.pipeline is None

    @pytest.mark.asyncio
    async def test_audio_without_transcriber_is_reported(self, clean_env, tmp_path):
        daemon = Daemon(make_config(tmp_path, audio={"enabled": True}))

        await daemon.start()
        failures = daemon.health.get_startup_failures()
        await daemon.shutdown()

        assert daemon.pipeline is None
        assert "OPENAI_API_KEY" in failures[0]["error"]

    @pytest.mark.asyncio
    async def test_semantic_search_is_literal_without_openai(
        self, clean_env, tmp_path, segments
    ):
        daemon = Daemon(make_config(tmp_path))

        hit = await daemon.semantic_search("vid00001", segments, "feed your starter")
        miss = await daemon.semantic_search("vid00001", segments, "oven temperature")
        await daemon.shutdown()

        assert hit.start == 60.0
        assert miss.method == "none"

    @pytest.mark.asyncio
    async def test_health_before_startup(self, clean_env, tmp_path):
        daemon = Daemon(make_config(tmp_path))

        with freeze_time("2026-10-18 12:00:00", real_asyncio=True):
            payload = await daemon.health_payload()
        await daemon.shutdown()

        assert payload["timestamp"] == "2026-10-18T12:00:00+00:00"
        assert payload["status"] == "unhealthy"
        assert payload["ready"] is False
        assert payload["cache"] == {"transcriptCount": 0, "embeddingCount": 0, "mediaCount": 0}
