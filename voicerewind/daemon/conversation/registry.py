"""Session registry: one conversational session per session id."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any, Protocol

from voicerewind.common.structured_logging import get_logger

from ..errors import ConfigurationMissing, ConnectionLost, UpstreamUnavailable
from .session import AgentConnection, ConversationSession
from .turn import MediaSink, TurnPolicy, TurnResult

logger = get_logger(__name__, service_name="voicerewind")


class AgentConnector(Protocol):
    """Performs the handshake and returns an open agent connection."""

    async def connect(self) -> AgentConnection: ...


class SessionRegistry:
    """Creates sessions on demand, reuses open ones and forgets closed ones.

    The registry is the only owner of the session map. A handshake in flight
    for an id is shared by every caller asking for that id, so an id never has
    two connections being opened at once.
    """

    def __init__(
        self,
        connector: AgentConnector | None,
        policy: TurnPolicy | None = None,
        media: MediaSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._connector = connector
        self._policy = policy or TurnPolicy()
        self._media = media
        self._clock = clock
        self._sessions: dict[str, ConversationSession] = {}
        self._handshakes: dict[str, asyncio.Future[ConversationSession]] = {}

    @property
    def available(self) -> bool:
        return self._connector is not None

    def get(self, session_id: str) -> ConversationSession | None:
        return self._sessions.get(session_id)

    async def get_or_create(self, session_id: str) -> ConversationSession:
        """Return the open session for ``session_id``, connecting if needed.

        Raises:
            ConfigurationMissing: no agent credentials; nothing is attempted.
            UpstreamUnavailable: the handshake failed.
            ConnectionLost: the registry was closed during the handshake.
        """
        if self._connector is None:
            raise ConfigurationMissing(
                "conversation", "ELEVENLABS_API_KEY and ELEVENLABS_AGENT_ID"
            )

        session = self._sessions.get(session_id)
        if session is not None:
            if session.is_open:
                return session
            self._sessions.pop(session_id, None)

        in_flight = self._handshakes.get(session_id)
        if in_flight is not None:
            return await asyncio.shield(in_flight)

        handshake: asyncio.Future[ConversationSession] = (
            asyncio.get_running_loop().create_future()
        )
        self._handshakes[session_id] = handshake
        try:
            connection = await self._connector.connect()
        except asyncio.CancelledError:
            if not handshake.done():
                handshake.cancel()
            raise
        except Exception as exc:
            error = (
                exc
                if isinstance(exc, UpstreamUnavailable)
                else UpstreamUnavailable("conversation", f"{type(exc).__name__}: {exc}")
            )
            if not handshake.done():
                handshake.set_exception(error)
                # mark retrieved; waiters (if any) still receive it
                handshake.exception()
            logger.warning(
                "session_registry.handshake_failed", session_id=session_id, error=str(error)
            )
            if error is exc:
                raise
            raise error from exc
        finally:
            self._handshakes.pop(session_id, None)

        if handshake.done():
            # close_all() ran while the connector was still working
            try:
                await connection.close()
            except Exception as exc:
                logger.debug(
                    "session_registry.connection_close_failed",
                    session_id=session_id,
                    error=str(exc),
                )
            logger.info("session_registry.handshake_abandoned", session_id=session_id)
            raise ConnectionLost(session_id, "registry closed during handshake")

        session = ConversationSession(
            session_id,
            connection,
            policy=self._policy,
            media=self._media,
            clock=self._clock,
            on_closed=self._forget,
        )
        session.start()
        self._sessions[session_id] = session
        handshake.set_result(session)
        logger.info(
            "session_registry.session_created",
            session_id=session_id,
            sessions=len(self._sessions),
        )
        return session

    async def send(
        self, session_id: str, message: str, context: str | None = None
    ) -> TurnResult:
        """Ask ``message`` in ``session_id`` and wait for the finalized turn.

        Raises:
            ConfigurationMissing, UpstreamUnavailable: no session could be had.
            ConnectionLost: the connection closed before the turn completed.
        """
        session = await self.get_or_create(session_id)
        return await session.ask(message, context)

    async def dispose(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close("disposed")
        return True

    async def close_all(self) -> None:
        for session_id, handshake in list(self._handshakes.items()):
            if not handshake.done():
                handshake.set_exception(ConnectionLost(session_id, "shutdown"))
                handshake.exception()
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.close("shutdown")
        if sessions:
            logger.info("session_registry.closed_all", sessions=len(sessions))

    def stats(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "sessions": len(self._sessions),
            "open": sum(1 for session in self._sessions.values() if session.is_open),
            "pending": sum(
                session.aggregator.pending_count for session in self._sessions.values()
            ),
            "handshakes": len(self._handshakes),
        }

    def _forget(self, session: ConversationSession) -> None:
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
            logger.info(
                "session_registry.session_removed",
                session_id=session.session_id,
                sessions=len(self._sessions),
            )


__all__ = ["AgentConnector", "SessionRegistry"]
