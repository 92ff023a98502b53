"""Handshake with the ElevenLabs conversational agent."""

from __future__ import annotations

import httpx
from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException

from voicerewind.common.structured_logging import get_logger

from ..conversation.session import AgentConnection
from ..errors import UpstreamUnavailable

logger = get_logger(__name__, service_name="voicerewind")

DEFAULT_API_BASE = "https://api.elevenlabs.io"
SIGNED_URL_PATHS = (
    "/v1/convai/conversation/get-signed-url",
    "/v1/convai/conversation/get_signed_url",
)


class ElevenLabsConnector:
    """Opens one websocket per conversational session.

    A signed URL is requested first so the API key never appears in the
    websocket URL; both spellings of the endpoint are tried.
    """

    def __init__(
        self,
        api_key: str,
        agent_id: str,
        http_client: httpx.AsyncClient,
        api_base: str = DEFAULT_API_BASE,
        open_timeout: float = 10.0,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.agent_id = agent_id
        self.open_timeout = open_timeout
        self._api_key = api_key
        self._http = http_client
        self._logger = logger

        self._logger.info(
            "conversation_connector.initialized",
            api_base=self.api_base,
            agent_id=agent_id,
        )

    async def signed_url(self) -> str:
        """Return a signed websocket URL for the configured agent.

        Raises:
            UpstreamUnavailable: no endpoint returned a usable URL
        """
        last_error = "no response"
        for path in SIGNED_URL_PATHS:
            try:
                response = await self._http.get(
                    f"{self.api_base}{path}",
                    params={"agent_id": self.agent_id},
                    headers={"xi-api-key": self._api_key},
                )
                response.raise_for_status()
                url = response.json().get("signed_url")
            except (httpx.HTTPError, ValueError) as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                self._logger.debug(
                    "conversation_connector.signed_url_attempt_failed",
                    path=path,
                    error=last_error,
                )
                continue
            if isinstance(url, str) and url:
                return url
            last_error = "response carried no signed_url"
        raise UpstreamUnavailable("elevenlabs_conversation", last_error)

    async def connect(self) -> AgentConnection:
        """Open the agent websocket.

        Raises:
            UpstreamUnavailable: the signed URL or the websocket handshake failed
        """
        url = await self.signed_url()
        try:
            connection = await connect(
                url,
                additional_headers={"xi-api-key": self._api_key},
                open_timeout=self.open_timeout,
                max_size=None,
            )
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise UpstreamUnavailable(
                "elevenlabs_conversation", f"{type(exc).__name__}: {exc}"
            ) from exc

        self._logger.info("conversation_connector.connected", agent_id=self.agent_id)
        return connection


__all__ = ["DEFAULT_API_BASE", "ElevenLabsConnector"]
