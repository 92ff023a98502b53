"""Configuration system for the VoiceRewind daemon."""

from .base import (
    BaseConfig,
    ConfigError,
    FieldDefinition,
    HttpConfig,
    LoggingConfig,
    ValidationError,
)
from .presets import (
    AudioConfig,
    CacheConfig,
    DaemonConfig,
    ProviderConfig,
    TurnPolicyConfig,
)

__all__ = [
    "AudioConfig",
    "BaseConfig",
    "CacheConfig",
    "ConfigError",
    "DaemonConfig",
    "FieldDefinition",
    "HttpConfig",
    "LoggingConfig",
    "ProviderConfig",
    "TurnPolicyConfig",
    "ValidationError",
]
