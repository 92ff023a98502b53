"""Input checks for the HTTP entry points."""

from __future__ import annotations

import math
import re
from typing import Any

from .errors import ValidationFailed

DEFAULT_SESSION_ID = "default"
MAX_QUERY_LENGTH = 1000
MAX_SESSION_ID_LENGTH = 100
SEARCH_QUERY_LENGTH = (2, 500)

_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{5,50}$")
_SUSPICIOUS = (
    re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
)
_SQL_STATEMENT = re.compile(r"^(?:DELETE|DROP|UPDATE|INSERT)\s", re.IGNORECASE)


def validate_video_id(video_id: Any) -> str:
    """Return the trimmed YouTube video id or raise ValidationFailed."""
    if not isinstance(video_id, str) or not video_id.strip():
        raise ValidationFailed("Video ID is required", field="videoId")
    trimmed = video_id.strip()
    if not 5 <= len(trimmed) <= 50:
        raise ValidationFailed("Video ID must be between 5 and 50 characters", field="videoId")
    if not _VIDEO_ID.match(trimmed):
        raise ValidationFailed("Video ID contains invalid characters", field="videoId")
    return trimmed


def validate_query(query: Any, field: str = "q") -> str:
    if not isinstance(query, str) or not query.strip():
        raise ValidationFailed("Query is required", field=field)
    trimmed = query.strip()
    if len(trimmed) > MAX_QUERY_LENGTH:
        raise ValidationFailed(
            f"Query too long (max {MAX_QUERY_LENGTH} characters)", field=field
        )
    if any(pattern.search(trimmed) for pattern in _SUSPICIOUS):
        raise ValidationFailed("Query contains potentially harmful content", field=field)
    return trimmed


def validate_search_query(query: Any) -> str:
    """Stricter rules for queries forwarded to the web search provider."""
    trimmed = validate_query(query, field="query")
    low, high = SEARCH_QUERY_LENGTH
    if len(trimmed) < low:
        raise ValidationFailed(
            f"Query must be at least {low} characters long", field="query"
        )
    if len(trimmed) > high:
        raise ValidationFailed(f"Query too long (max {high} characters)", field="query")
    if _SQL_STATEMENT.match(trimmed):
        raise ValidationFailed("Query contains suspicious content", field="query")
    return trimmed


def validate_session_id(session_id: Any) -> str:
    if session_id is None or session_id == "":
        return DEFAULT_SESSION_ID
    if not isinstance(session_id, str):
        raise ValidationFailed("Session ID must be a string", field="sessionId")
    if len(session_id) > MAX_SESSION_ID_LENGTH:
        raise ValidationFailed("Session ID too long", field="sessionId")
    return session_id


def validate_current_time(current_time: Any) -> float | None:
    if current_time is None:
        return None
    if (
        isinstance(current_time, bool)
        or not isinstance(current_time, (int, float))
        or not math.isfinite(current_time)
        or current_time < 0
    ):
        raise ValidationFailed(
            "Current time must be a non-negative number", field="currentTime"
        )
    return float(current_time)


__all__ = [
    "DEFAULT_SESSION_ID",
    "validate_current_time",
    "validate_query",
    "validate_search_query",
    "validate_session_id",
    "validate_video_id",
]
