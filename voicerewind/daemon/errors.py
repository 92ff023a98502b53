"""Error taxonomy for the daemon.

Recoverable failures are converted into fallback results at component
boundaries; these classes let callers tell the kinds apart.
"""

from __future__ import annotations


class VoiceRewindError(Exception):
    """Base class for daemon errors."""


class ConfigurationMissing(VoiceRewindError):
    """An optional backend cannot be used because its settings are absent."""

    def __init__(self, component: str, setting: str) -> None:
        self.component = component
        self.setting = setting
        super().__init__(f"{component} is not configured (missing {setting})")


class ValidationFailed(VoiceRewindError):
    """Malformed input on an external entry point."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message if field is None else f"{field}: {message}")

    def to_dict(self) -> dict[str, str | None]:
        return {"error": "Validation failed", "message": self.message, "field": self.field}


class UpstreamUnavailable(VoiceRewindError):
    """A network backend failed or returned something unusable."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        self.message = message
        super().__init__(f"{service} unavailable: {message}")


class ConnectionLost(VoiceRewindError):
    """A conversational session's duplex connection closed mid-turn."""

    def __init__(self, session_id: str, reason: str = "connection closed") -> None:
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"session {session_id!r} lost its connection: {reason}")


__all__ = [
    "ConfigurationMissing",
    "ConnectionLost",
    "UpstreamUnavailable",
    "ValidationFailed",
    "VoiceRewindError",
]
