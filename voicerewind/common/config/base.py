"""Core configuration primitives for the VoiceRewind daemon.

Configuration classes declare their fields once; values are taken from
constructor keyword arguments first and then overridden by environment
variables, so the daemon can be tuned without code changes.
"""

from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class ConfigError(Exception):
    """Base exception for configuration-related errors."""


class ValidationError(ConfigError):
    """Exception raised when configuration validation fails."""

    def __init__(self, field_name: str, value: Any, message: str) -> None:
        self.field = field_name
        self.value = value
        self.message = message
        super().__init__(f"Validation failed for field '{field_name}': {message}")


@dataclass
class FieldDefinition:
    """Definition for a configuration field with validation rules."""

    name: str
    field_type: type[Any]
    default: Any = None
    description: str = ""
    env_var: str | None = None
    choices: list[Any] | None = None
    min_value: int | float | None = None
    max_value: int | float | None = None
    pattern: str | None = None

    def __post_init__(self) -> None:
        if self.choices and self.default not in self.choices:
            raise ValueError(f"Field '{self.name}' default value not in choices")


class BaseConfig(ABC):
    """Base configuration class with validation and environment loading."""

    def __init__(self, **kwargs: Any) -> None:
        self._values: dict[str, Any] = {}
        self._load_from_kwargs(kwargs)
        self._load_from_environment()
        self._validate()

    def _load_from_kwargs(self, kwargs: dict[str, Any]) -> None:
        known = {field_def.name for field_def in self.get_field_definitions()}
        unknown = set(kwargs) - known
        if unknown:
            raise ConfigError(
                f"Unknown field(s) for {type(self).__name__}: {sorted(unknown)}"
            )
        for field_def in self.get_field_definitions():
            if field_def.name in kwargs:
                self._values[field_def.name] = kwargs[field_def.name]

    def _load_from_environment(self) -> None:
        for field_def in self.get_field_definitions():
            if not field_def.env_var:
                continue
            env_value = os.getenv(field_def.env_var)
            if env_value is None:
                continue
            try:
                self._values[field_def.name] = self._convert_env_value(
                    env_value, field_def.field_type
                )
            except ValueError as exc:
                raise ValidationError(
                    field_def.name, env_value, f"Cannot parse {field_def.env_var}"
                ) from exc

    def _convert_env_value(self, value: str, field_type: type[Any]) -> Any:
        """Convert environment variable string to appropriate type."""
        if field_type is bool:
            return value.strip().lower() in ("true", "1", "yes", "on")
        if field_type is int:
            return int(value)
        if field_type is float:
            return float(value)
        if field_type is list:
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def _validate(self) -> None:
        for field_def in self.get_field_definitions():
            value = self._values.get(field_def.name, field_def.default)

            if value is not None:
                value = self._validate_field(field_def, value)
            self._values[field_def.name] = value

    def _validate_field(self, field_def: FieldDefinition, value: Any) -> Any:
        """Validate a single field value and return its normalized form."""
        # ints are accepted where floats are declared; bools never count as numbers
        if (
            field_def.field_type is float
            and isinstance(value, int)
            and not isinstance(value, bool)
        ):
            value = float(value)

        if not isinstance(value, field_def.field_type) or (
            field_def.field_type in (int, float) and isinstance(value, bool)
        ):
            raise ValidationError(
                field_def.name, value, f"Expected {field_def.field_type.__name__}"
            )

        if field_def.choices:
            if isinstance(value, str):
                for choice in field_def.choices:
                    if isinstance(choice, str) and choice.upper() == value.upper():
                        value = choice
                        break
            if value not in field_def.choices:
                raise ValidationError(
                    field_def.name, value, f"Must be one of {field_def.choices}"
                )

        if field_def.min_value is not None and value < field_def.min_value:
            raise ValidationError(
                field_def.name, value, f"Must be >= {field_def.min_value}"
            )
        if field_def.max_value is not None and value > field_def.max_value:
            raise ValidationError(
                field_def.name, value, f"Must be <= {field_def.max_value}"
            )

        if (
            field_def.pattern
            and isinstance(value, str)
            and not re.match(field_def.pattern, value)
        ):
            raise ValidationError(
                field_def.name, value, f"Must match pattern {field_def.pattern}"
            )

        return value

    @classmethod
    @abstractmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        """Get field definitions for this configuration class."""

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self._values:
            return self._values[name]
        raise AttributeError(f"Configuration field '{name}' not found")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return self._values.copy()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._values!r})"


class LoggingConfig(BaseConfig):
    """Logging configuration."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="level",
                field_type=str,
                default="INFO",
                description="Log level",
                env_var="LOG_LEVEL",
                choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            ),
            FieldDefinition(
                name="json_logs",
                field_type=bool,
                default=False,
                description="Use JSON logging format",
                env_var="LOG_JSON",
            ),
            FieldDefinition(
                name="service_name",
                field_type=str,
                default="voicerewind",
                description="Service name for logging",
                env_var="SERVICE_NAME",
            ),
        ]


class HttpConfig(BaseConfig):
    """Local HTTP/WebSocket listener configuration."""

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            FieldDefinition(
                name="host",
                field_type=str,
                default="127.0.0.1",
                description="Interface the daemon binds to",
                env_var="HOST",
            ),
            FieldDefinition(
                name="port",
                field_type=int,
                default=17321,
                description="Port shared by the HTTP API and control channel",
                env_var="PORT",
                min_value=1,
                max_value=65535,
            ),
            FieldDefinition(
                name="heartbeat_interval",
                field_type=float,
                default=30.0,
                description="Seconds between control channel heartbeats",
                env_var="HEARTBEAT_INTERVAL",
                min_value=1.0,
                max_value=600.0,
            ),
        ]
