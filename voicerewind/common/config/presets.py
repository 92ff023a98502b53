"""Daemon-specific configuration sections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .base import BaseConfig, FieldDefinition, HttpConfig, LoggingConfig


class ProviderConfig(BaseConfig):
    """Credentials and model names for the optional AI backends.

    Every key is optional: a missing key disables the backend that needs it and
    the daemon falls back to the next answer path.
    """

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="openai_api_key",
                field_type=str,
                default="",
                description="OpenAI key for transcription, embeddings and answers",
                env_var="OPENAI_API_KEY",
            ),
            FieldDefinition(
                name="elevenlabs_api_key",
                field_type=str,
                default="",
                description="ElevenLabs key for speech and the conversational agent",
                env_var="ELEVENLABS_API_KEY",
            ),
            FieldDefinition(
                name="elevenlabs_agent_id",
                field_type=str,
                default="",
                description="ElevenLabs conversational agent identifier",
                env_var="ELEVENLABS_AGENT_ID",
            ),
            FieldDefinition(
                name="elevenlabs_voice_id",
                field_type=str,
                default="21m00Tcm4TlvDq8ikWAM",
                description="Voice used for text-to-speech fallback",
                env_var="ELEVENLABS_VOICE_ID",
            ),
            FieldDefinition(
                name="elevenlabs_api_base",
                field_type=str,
                default="https://api.elevenlabs.io",
                description="ElevenLabs API base URL",
                env_var="ELEVENLABS_API_BASE",
                pattern=r"^https?://",
            ),
            FieldDefinition(
                name="tts_model",
                field_type=str,
                default="eleven_multilingual_v2",
                description="ElevenLabs text-to-speech model",
                env_var="ELEVENLABS_TTS_MODEL",
            ),
            FieldDefinition(
                name="tavily_api_key",
                field_type=str,
                default="",
                description="Tavily key for the web search fallback",
                env_var="TAVILY_API_KEY",
            ),
            FieldDefinition(
                name="tool_secret",
                field_type=str,
                default="",
                description="Shared secret required by the web search tool route",
                env_var="TOOL_SECRET",
            ),
            FieldDefinition(
                name="chat_model",
                field_type=str,
                default="gpt-4o-mini",
                description="OpenAI chat model used for answer synthesis",
                env_var="OPENAI_CHAT_MODEL",
            ),
            FieldDefinition(
                name="embedding_model",
                field_type=str,
                default="text-embedding-3-small",
                description="OpenAI embedding model for semantic search",
                env_var="EMBEDDING_MODEL",
            ),
            FieldDefinition(
                name="transcribe_model",
                field_type=str,
                default="whisper-1",
                description="OpenAI speech-to-text model",
                env_var="TRANSCRIBE_MODEL",
            ),
            FieldDefinition(
                name="http_timeout",
                field_type=float,
                default=30.0,
                description="Timeout in seconds for outbound HTTP calls",
                env_var="HTTP_TIMEOUT",
                min_value=1.0,
                max_value=300.0,
            ),
        ]

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_elevenlabs(self) -> bool:
        return bool(self.elevenlabs_api_key)

    @property
    def has_conversation(self) -> bool:
        return bool(self.elevenlabs_api_key and self.elevenlabs_agent_id)

    @property
    def has_tavily(self) -> bool:
        return bool(self.tavily_api_key)


class AudioConfig(BaseConfig):
    """Microphone capture and wake-word settings."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="enabled",
                field_type=bool,
                default=False,
                description="Start the microphone wake-word pipeline",
                env_var="ENABLE_AUDIO",
            ),
            FieldDefinition(
                name="wake_keyword",
                field_type=str,
                default="hey_jarvis",
                description="Bundled openWakeWord model used when no paths are given",
                env_var="WAKE_KEYWORD",
            ),
            FieldDefinition(
                name="model_paths",
                field_type=list,
                default=[],
                description="Custom openWakeWord model files",
                env_var="WAKE_MODEL_PATHS",
            ),
            FieldDefinition(
                name="sensitivity",
                field_type=float,
                default=0.5,
                description="Wake score threshold (0-1)",
                env_var="SENSITIVITY",
                min_value=0.0,
                max_value=1.0,
            ),
            FieldDefinition(
                name="inference_framework",
                field_type=str,
                default="onnx",
                description="openWakeWord inference backend",
                env_var="WAKE_INFERENCE_FRAMEWORK",
                choices=["onnx", "tflite"],
            ),
            FieldDefinition(
                name="capture_seconds",
                field_type=float,
                default=3.5,
                description="Length of the utterance captured after the wake word",
                env_var="CAPTURE_SECONDS",
                min_value=0.5,
                max_value=15.0,
            ),
            FieldDefinition(
                name="sample_rate",
                field_type=int,
                default=16000,
                description="Microphone sample rate in Hz",
                env_var="SAMPLE_RATE",
                choices=[16000],
            ),
            FieldDefinition(
                name="device",
                field_type=str,
                default=None,
                description="sounddevice input device name or index",
                env_var="AUDIO_DEVICE",
            ),
        ]


class TurnPolicyConfig(BaseConfig):
    """Thresholds deciding when a conversational turn is complete."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="poll_interval",
                field_type=float,
                default=0.3,
                description="Seconds between finalization checks",
                env_var="TURN_POLL_INTERVAL",
                min_value=0.05,
                max_value=5.0,
            ),
            FieldDefinition(
                name="audio_idle",
                field_type=float,
                default=1.2,
                description="Idle seconds after the last audio chunk",
                env_var="TURN_AUDIO_IDLE",
                min_value=0.1,
                max_value=30.0,
            ),
            FieldDefinition(
                name="text_idle",
                field_type=float,
                default=3.0,
                description="Idle seconds after the last event for text-only turns",
                env_var="TURN_TEXT_IDLE",
                min_value=0.1,
                max_value=60.0,
            ),
            FieldDefinition(
                name="max_wait",
                field_type=float,
                default=30.0,
                description="Upper bound on how long one ask may stay pending",
                env_var="TURN_MAX_WAIT",
                min_value=1.0,
                max_value=600.0,
            ),
        ]


class CacheConfig(BaseConfig):
    """On-disk cache and session memory settings."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="cache_dir",
                field_type=str,
                default="cache",
                description="Root directory for transcripts, embeddings and media",
                env_var="CACHE_DIR",
            ),
            FieldDefinition(
                name="max_session_memory",
                field_type=int,
                default=6,
                description="Exchanges remembered per conversation session",
                env_var="MAX_SESSION_MEMORY",
                min_value=0,
                max_value=100,
            ),
            FieldDefinition(
                name="session_memory_chars",
                field_type=int,
                default=800,
                description="Characters kept per remembered exchange",
                env_var="SESSION_MEMORY_CHARS",
                min_value=50,
                max_value=10000,
            ),
        ]


@dataclass
class DaemonConfig:
    """Every configuration section the daemon needs."""

    logging: LoggingConfig
    http: HttpConfig
    providers: ProviderConfig
    audio: AudioConfig
    turn: TurnPolicyConfig
    cache: CacheConfig

    @classmethod
    def from_env(cls, **overrides: dict[str, Any]) -> DaemonConfig:
        """Build all sections from the environment.

        ``overrides`` maps a section name to keyword arguments for that section,
        e.g. ``DaemonConfig.from_env(audio={"enabled": False})``.
        """
        return cls(
            logging=LoggingConfig(**overrides.get("logging", {})),
            http=HttpConfig(**overrides.get("http", {})),
            providers=ProviderConfig(**overrides.get("providers", {})),
            audio=AudioConfig(**overrides.get("audio", {})),
            turn=TurnPolicyConfig(**overrides.get("turn", {})),
            cache=CacheConfig(**overrides.get("cache", {})),
        )

    def feature_flags(self) -> dict[str, bool]:
        return {
            "hasOpenAI": self.providers.has_openai,
            "hasElevenLabs": self.providers.has_elevenlabs,
            "hasConversation": self.providers.has_conversation,
            "hasTavily": self.providers.has_tavily,
            "enableAudio": bool(self.audio.enabled),
        }
