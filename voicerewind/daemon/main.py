"""Entrypoint for the VoiceRewind daemon."""

from __future__ import annotations

from voicerewind.common.config import DaemonConfig
from voicerewind.common.structured_logging import configure_logging, get_logger


def main() -> None:
    """Configure logging, build the app and serve it on the local port."""
    import uvicorn

    config = DaemonConfig.from_env()

    # logging must be configured before the app modules create their loggers
    configure_logging(
        config.logging.level,
        json_logs=config.logging.json_logs,
        service_name=config.logging.service_name,
    )

    from voicerewind.daemon.app import create_app

    app = create_app(config)
    get_logger(__name__, service_name=config.logging.service_name).info(
        "daemon.serving", host=config.http.host, port=config.http.port
    )

    # uvicorn would otherwise replace the handlers configure_logging installed
    uvicorn.run(
        app,
        host=config.http.host,
        port=config.http.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
