"""HTTP and WebSocket surface of the daemon."""

from __future__ import annotations

import hmac
import json
import time
from typing import Any

from fastapi import Body, FastAPI, Header, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from voicerewind import __version__
from voicerewind.common.app_factory import create_service_app
from voicerewind.common.config import DaemonConfig
from voicerewind.common.structured_logging import get_logger

from .backends import format_sources
from .broadcast import WebSocketClient
from .cache import MEDIA_ROUTE
from .errors import ConfigurationMissing, UpstreamUnavailable, ValidationFailed
from .intents import IntentMessage
from .models import (
    AgentQueryRequest,
    AgentQueryResponse,
    SimulateResponse,
    WebSearchRequest,
    WebSearchResponse,
)
from .service import SERVICE_NAME, Daemon
from .validation import (
    validate_current_time,
    validate_query,
    validate_search_query,
    validate_session_id,
    validate_video_id,
)

logger = get_logger(__name__, service_name=SERVICE_NAME)

_TRUE_FLAGS = {"1", "true", "yes"}


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUE_FLAGS


def create_app(config: DaemonConfig | None = None, daemon: Daemon | None = None) -> FastAPI:
    """Build the FastAPI app around ``daemon`` (or a new one from ``config``)."""
    if daemon is None:
        daemon = Daemon(config or DaemonConfig.from_env())

    app = create_service_app(
        SERVICE_NAME,
        __version__,
        title="VoiceRewind daemon",
        startup_callback=daemon.start,
        shutdown_callback=daemon.shutdown,
        health_manager=daemon.health,
    )
    app.state.daemon = daemon
    app.mount(
        MEDIA_ROUTE,
        StaticFiles(directory=daemon.cache.media_dir, check_dir=False),
        name="media",
    )

    @app.exception_handler(ValidationFailed)
    async def _validation_failed(_request: Request, exc: ValidationFailed) -> JSONResponse:
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(_request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = [str(part) for part in first.get("loc", ()) if part != "body"]
        failure = ValidationFailed(
            str(first.get("msg", "Invalid request")),
            field=".".join(location) or None,
        )
        return JSONResponse(status_code=400, content=failure.to_dict())

    @app.exception_handler(ConfigurationMissing)
    async def _not_configured(_request: Request, exc: ConfigurationMissing) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"error": "Not configured", "component": exc.component, "setting": exc.setting},
        )

    @app.exception_handler(UpstreamUnavailable)
    async def _upstream_failed(_request: Request, exc: UpstreamUnavailable) -> JSONResponse:
        logger.warning("api.upstream_unavailable", service=exc.service, error=exc.message)
        return JSONResponse(
            status_code=502,
            content={"error": "Upstream unavailable", "service": exc.service, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def _internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "api.internal_error",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"error": "Internal error"})

    @app.websocket("/")
    async def control_channel(websocket: WebSocket) -> None:
        await websocket.accept()
        client = WebSocketClient(websocket)
        daemon.channel.add(client)
        try:
            await client.send_text(
                json.dumps(
                    {
                        "type": "connection",
                        "status": "connected",
                        "timestamp": int(time.time() * 1000),
                    },
                    separators=(",", ":"),
                )
            )
            while True:
                frame = await websocket.receive_text()
                logger.debug(
                    "api.client_frame_ignored", client_id=client.client_id, chars=len(frame)
                )
        except WebSocketDisconnect as exc:
            logger.debug("api.client_disconnected", client_id=client.client_id, code=exc.code)
        finally:
            daemon.channel.remove(client)

    @app.post("/simulate", response_model=SimulateResponse)
    async def simulate(payload: Any = Body(...)) -> SimulateResponse:
        message = IntentMessage.from_payload(payload)
        result = await daemon.channel.broadcast(message)
        return SimulateResponse(sent=result.sent, failed=result.failed, skipped=result.skipped)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return await daemon.health_payload()

    @app.get("/transcript")
    async def transcript(
        videoId: str | None = Query(None),
        force: str | None = Query(None),
    ) -> dict[str, Any]:
        video_id = validate_video_id(videoId)
        force_refresh = _flag(force)
        cached = not force_refresh and daemon.transcripts.has(video_id)
        segments = await daemon.transcripts.get(video_id, force_refresh)
        return {
            "ok": True,
            "videoId": video_id,
            "segments": [segment.to_dict() for segment in segments],
            "count": len(segments),
            "cached": cached,
        }

    @app.get("/semantic_search")
    async def semantic_search(
        videoId: str | None = Query(None),
        q: str | None = Query(None),
        force: str | None = Query(None),
    ) -> dict[str, Any]:
        video_id = validate_video_id(videoId)
        query = validate_query(q)
        force_refresh = _flag(force)
        segments = await daemon.transcripts.get(video_id, force_refresh)
        match = await daemon.semantic_search(video_id, segments, query, force_refresh)
        return {"ok": True, "videoId": video_id, "query": query, **match.to_dict()}

    @app.post("/agent/query", response_model=AgentQueryResponse)
    async def agent_query(body: AgentQueryRequest) -> AgentQueryResponse:
        query = validate_query(body.q)
        video_id = (
            validate_video_id(body.videoId) if body.videoId not in (None, "") else None
        )
        current_time = validate_current_time(body.currentTime)
        session_id = validate_session_id(body.sessionId)
        answer = await daemon.agent.answer(query, video_id, current_time, session_id)
        return AgentQueryResponse(**answer.to_dict())

    @app.post("/tools/web_search", response_model=WebSearchResponse)
    async def web_search(
        body: WebSearchRequest,
        x_tool_secret: str | None = Header(None),
    ) -> Any:
        secret = daemon.config.providers.tool_secret
        if not secret or not hmac.compare_digest(
            (x_tool_secret or "").encode(), secret.encode()
        ):
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        query = validate_search_query(body.query if body.query is not None else body.q)
        results = await daemon.search.search(query) if daemon.search is not None else []
        answer = await daemon.answers.synthesize_answer(query, results, body.context)
        return WebSearchResponse(
            answer=answer,
            sources=format_sources(results),
            results=[result.to_dict() for result in results],
        )

    @app.delete("/cache/{videoId}")
    async def clear_cache(videoId: str) -> dict[str, Any]:
        video_id = validate_video_id(videoId)
        removed = daemon.transcripts.clear(video_id)
        return {"ok": True, "message": f"Cache cleared for video {video_id}", "removed": removed}

    @app.get("/cache/stats")
    async def cache_stats() -> dict[str, Any]:
        return {
            "ok": True,
            **daemon.cache.stats(),
            "paths": {
                "transcripts": str(daemon.cache.transcripts_dir),
                "media": str(daemon.cache.media_dir),
            },
        }

    return app


__all__ = ["create_app"]
