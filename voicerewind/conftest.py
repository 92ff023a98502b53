"""Fixtures shared by every test package."""

import pytest

CONFIG_ENV_VARS = (
    "LOG_LEVEL",
    "LOG_JSON",
    "SERVICE_NAME",
    "HOST",
    "PORT",
    "HEARTBEAT_INTERVAL",
    "OPENAI_API_KEY",
    "ELEVENLABS_API_KEY",
    "ELEVENLABS_AGENT_ID",
    "ELEVENLABS_VOICE_ID",
    "ELEVENLABS_API_BASE",
    "ELEVENLABS_TTS_MODEL",
    "TAVILY_API_KEY",
    "TOOL_SECRET",
    "OPENAI_CHAT_MODEL",
    "EMBEDDING_MODEL",
    "TRANSCRIBE_MODEL",
    "HTTP_TIMEOUT",
    "ENABLE_AUDIO",
    "WAKE_KEYWORD",
    "WAKE_MODEL_PATHS",
    "SENSITIVITY",
    "WAKE_INFERENCE_FRAMEWORK",
    "CAPTURE_SECONDS",
    "SAMPLE_RATE",
    "AUDIO_DEVICE",
    "TURN_POLL_INTERVAL",
    "TURN_AUDIO_IDLE",
    "TURN_TEXT_IDLE",
    "TURN_MAX_WAIT",
    "CACHE_DIR",
    "MAX_SESSION_MEMORY",
    "SESSION_MEMORY_CHARS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every environment variable the config classes read."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
