"""Pydantic models for the HTTP API.

Field names are the camelCase keys the browser extension sends and reads.
Values are checked by :mod:`voicerewind.daemon.validation` in the handlers so
every entry point reports errors the same way.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class AgentQueryRequest(BaseModel):
    """Request model for an agent question."""

    q: Any = Field(None, description="The question")
    videoId: Any = Field(None, description="Video the question is about")
    currentTime: Any = Field(None, description="Playback position in seconds")
    sessionId: Any = Field(None, description="Conversation session id")


class AgentQueryResponse(BaseModel):
    """Response model for an agent question."""

    ok: bool = Field(True, description="Whether an answer was produced")
    text: str = Field(..., description="Answer text")
    audioUrl: str | None = Field(None, description="URL path of the spoken answer")
    sources: list[dict[str, Any]] = Field(
        default_factory=list, description="Numbered web sources cited in the text"
    )
    method: str = Field(..., description="Which backend produced the answer")


class WebSearchRequest(BaseModel):
    """Request model for the web search tool."""

    query: Any = Field(None, description="Search query")
    q: Any = Field(None, description="Alias of query")
    context: str | None = Field(None, description="Extra context for the answer")


class WebSearchResponse(BaseModel):
    """Response model for the web search tool."""

    ok: bool = Field(True, description="Whether the search ran")
    answer: str = Field(..., description="Synthesized answer")
    sources: list[dict[str, Any]] = Field(
        default_factory=list, description="Numbered sources"
    )
    results: list[dict[str, str]] = Field(
        default_factory=list, description="Raw search results"
    )


class SimulateResponse(BaseModel):
    """Response model for a simulated intent broadcast."""

    ok: bool = Field(True, description="Whether the frame was valid and broadcast")
    sent: int = Field(..., description="Clients the frame was written to")
    failed: int = Field(..., description="Clients whose write failed")
    skipped: int = Field(0, description="Clients that were not open")


__all__ = [
    "AgentQueryRequest",
    "AgentQueryResponse",
    "SimulateResponse",
    "WebSearchRequest",
    "WebSearchResponse",
]
