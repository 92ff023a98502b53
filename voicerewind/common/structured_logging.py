"""Centralized logging utilities for the VoiceRewind daemon."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import IO, Any

import structlog


_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Third-party loggers that are chatty at INFO/DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = (
    "httpcore",
    "httpx",
    "openai",
    "websockets",
    "websockets.client",
    "multipart",
    "onnxruntime",
)


def _numeric_level(level: str) -> int:
    name = (level or "").upper()
    return _LEVELS.get(name, logging.INFO)


Processor = Callable[[Any, str, dict[str, Any]], dict[str, Any]]


def _add_service(service_name: str | None) -> Processor:
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        if service_name and "service" not in event_dict:
            event_dict["service"] = service_name
        return event_dict

    return processor


def _build_formatter(
    pre_chain: list[Any], json_logs: bool
) -> structlog.stdlib.ProcessorFormatter:
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def configure_logging(
    level: str = "INFO",
    *,
    json_logs: bool = True,
    service_name: str | None = None,
    stream: IO[str] | None = None,
    full_tracebacks: bool | None = None,
) -> None:
    """Configure structlog + stdlib logging for the process.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output JSON formatted logs (True) or console format (False)
        service_name: Optional service name to include in all log messages
        stream: Optional output stream for logs (defaults to sys.stdout).
                Useful for testing to capture log output to StringIO.
        full_tracebacks: Use dict tracebacks instead of formatted ones. If None,
                        LOG_FULL_TRACEBACKS decides, falling back to DEBUG level.

    Example:
        configure_logging(level="INFO", json_logs=True, service_name="voicerewind")
    """

    numeric_level = _numeric_level(level)
    output_stream = stream if stream is not None else sys.stdout

    if full_tracebacks is None:
        env_full_tracebacks = os.getenv("LOG_FULL_TRACEBACKS", "").lower()
        if env_full_tracebacks in ("true", "1", "yes"):
            full_tracebacks = True
        elif env_full_tracebacks in ("false", "0", "no"):
            full_tracebacks = False
        else:
            full_tracebacks = numeric_level <= logging.DEBUG

    exception_processor = (
        structlog.processors.dict_tracebacks
        if full_tracebacks
        else structlog.processors.format_exc_info
    )

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        _add_service(service_name),
        exception_processor,
    ]

    handler = logging.StreamHandler(output_stream)
    handler.setFormatter(_build_formatter(shared_processors, json_logs))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)
    logging.captureWarnings(True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configure_uvicorn_loggers(output_stream, json_logs, service_name)


def get_logger(
    name: str,
    *,
    session_id: str | None = None,
    service_name: str | None = None,
) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound with standard metadata."""

    logger = structlog.stdlib.get_logger(name)
    if session_id:
        logger = logger.bind(session_id=session_id)
    if service_name:
        logger = logger.bind(service=service_name)
    return logger


@contextmanager
def session_context(
    session_id: str | None,
) -> Generator[structlog.stdlib.BoundLogger, None, None]:
    """Bind ``session_id`` to the structlog context for the duration of a block.

    The previous value is restored on exit, so nested contexts behave.

    Example:
        with session_context("voice-session") as logger:
            logger.info("voice.command_started")
    """
    previous: Any = None
    if session_id:
        previous = structlog.contextvars.get_contextvars().get("session_id")
        structlog.contextvars.bind_contextvars(session_id=session_id)

    logger = structlog.stdlib.get_logger()

    try:
        yield logger
    finally:
        if session_id:
            if previous is not None:
                structlog.contextvars.bind_contextvars(session_id=previous)
            else:
                structlog.contextvars.unbind_contextvars("session_id")


def _configure_uvicorn_loggers(
    stream: IO[str], json_logs: bool, service_name: str | None
) -> None:
    """Route uvicorn's stdlib loggers through the structlog formatter.

    Access logs are kept at WARNING: the browser extension polls the daemon and
    per-request lines would drown everything else.
    """
    pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        _add_service(service_name),
    ]
    handler = logging.StreamHandler(stream)
    handler.setFormatter(_build_formatter(pre_chain, json_logs))

    for name in ("uvicorn", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False

    access_logger = logging.getLogger("uvicorn.access")
    access_logger.handlers = [handler]
    access_logger.propagate = False
    access_logger.setLevel(logging.WARNING)


__all__ = [
    "configure_logging",
    "get_logger",
    "session_context",
]
