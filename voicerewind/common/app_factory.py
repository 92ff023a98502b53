"""Factory for creating the daemon's FastAPI app with a standard lifespan."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from voicerewind.common.health import HealthManager
from voicerewind.common.structured_logging import get_logger

logger = get_logger(__name__)


async def _maybe_await(
    callback: Callable[[], Any] | Callable[[], Awaitable[Any]],
) -> None:
    if asyncio.iscoroutinefunction(callback):
        await callback()
    else:
        callback()


def create_service_app(
    service_name: str,
    service_version: str = "0.1.0",
    title: str | None = None,
    *,
    startup_callback: Callable[[], Any] | Callable[[], Awaitable[Any]] | None = None,
    shutdown_callback: Callable[[], Any] | Callable[[], Awaitable[Any]] | None = None,
    health_manager: HealthManager | None = None,
    allow_origins: list[str] | None = None,
) -> FastAPI:
    """Create a FastAPI app with startup/shutdown callbacks wired into its lifespan.

    Startup exceptions are recorded on ``health_manager`` instead of crashing
    the process, so ``/health`` can still report what went wrong.

    Args:
        service_name: Name of the service, used in log event names
        service_version: Version reported in the OpenAPI schema
        title: FastAPI app title (defaults to service_name)
        startup_callback: Sync or async callable run before serving
        shutdown_callback: Sync or async callable run on shutdown
        health_manager: Receives startup failures when given
        allow_origins: CORS origins; the browser extension calls from its own
                       origin, so everything is allowed by default
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> Any:  # noqa: ARG001
        try:
            if startup_callback:
                await _maybe_await(startup_callback)
            logger.info(f"{service_name}.startup_complete")
        except Exception as exc:
            logger.error(f"{service_name}.startup_failed", error=str(exc), exc_info=True)
            if health_manager is not None:
                health_manager.record_startup_failure(
                    error=exc,
                    component="startup_callback",
                    is_critical=True,
                )

        yield

        if shutdown_callback:
            try:
                await _maybe_await(shutdown_callback)
            except Exception as exc:
                logger.error(f"{service_name}.shutdown_failed", error=str(exc))

        logger.info(f"{service_name}.shutdown")

    app = FastAPI(
        title=title or service_name,
        version=service_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service_name = service_name
    return app


__all__ = ["create_service_app"]
