"""One long-lived duplex connection to the conversational agent."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from typing import Protocol

from voicerewind.common.structured_logging import get_logger

from ..errors import ConnectionLost
from .events import (
    EventDecodeError,
    EventKind,
    contextual_update_frame,
    decode_event,
    initiation_frame,
    pong_frame,
    user_message_frame,
)
from .turn import MediaSink, TurnAggregator, TurnPolicy, TurnResult


class AgentConnection(Protocol):
    """The subset of a websockets client connection the session uses."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


class ConversationSession:
    """Owns one agent connection plus the turn state of its conversation.

    Three tasks run per session: a reader that decodes frames into the
    aggregator, a writer that drains the outbox in order, and a poller that
    asks the aggregator whether the current turn is complete. Outbound frames
    only ever go through the outbox, so frames queued together by :meth:`ask`
    reach the agent together and in order.
    """

    def __init__(
        self,
        session_id: str,
        connection: AgentConnection,
        policy: TurnPolicy | None = None,
        media: MediaSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        on_closed: Callable[[ConversationSession], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self.policy = policy or TurnPolicy()
        self.aggregator = TurnAggregator(self.policy, media, clock, session_id)
        self.sent_init = False
        self.last_activity = clock()
        self._connection = connection
        self._clock = clock
        self._on_closed = on_closed
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []
        self._is_open = False
        self._closing = False
        self._logger = get_logger(
            __name__, session_id=session_id, service_name="voicerewind"
        )

    @property
    def is_open(self) -> bool:
        return self._is_open and not self._closing

    def start(self) -> None:
        """Queue the initiation frame and start the session tasks."""
        if self._tasks:
            return
        self._is_open = True
        self._outbox.put_nowait(initiation_frame())
        self.sent_init = True
        self._tasks = [
            asyncio.create_task(self._read_loop(), name=f"session-reader-{self.session_id}"),
            asyncio.create_task(self._write_loop(), name=f"session-writer-{self.session_id}"),
            asyncio.create_task(self._poll_loop(), name=f"session-poller-{self.session_id}"),
        ]
        self._logger.info("session.started")

    def ask(self, message: str, context: str | None = None) -> asyncio.Future[TurnResult]:
        """Send a user message (preceded by its context) and return its result future."""
        if not self.is_open:
            raise ConnectionLost(self.session_id, "session is closed")
        future = self.aggregator.enqueue()
        if context and context.strip():
            self._outbox.put_nowait(contextual_update_frame(context.strip()))
        self._outbox.put_nowait(user_message_frame(message))
        self.last_activity = self._clock()
        self._logger.info(
            "session.message_queued",
            message_chars=len(message),
            has_context=bool(context and context.strip()),
            pending=self.aggregator.pending_count,
        )
        return future

    async def close(self, reason: str = "closed") -> None:
        """Reject pending asks, stop the tasks and close the connection."""
        if self._closing:
            return
        self._closing = True
        self._is_open = False

        # deregister before waking callers so a retry gets a fresh session
        if self._on_closed is not None:
            self._on_closed(self)
        self.aggregator.fail_all(ConnectionLost(self.session_id, reason))

        current = asyncio.current_task()
        others = [task for task in self._tasks if task is not current and not task.done()]
        for task in others:
            task.cancel()
        if others:
            await asyncio.gather(*others, return_exceptions=True)

        try:
            await self._connection.close()
        except Exception as exc:
            self._logger.debug("session.connection_close_failed", error=str(exc))

        self._logger.info("session.closed", reason=reason)

    def handle_frame(self, raw: str | bytes) -> None:
        """Decode one inbound frame and apply it."""
        try:
            event = decode_event(raw)
        except EventDecodeError as exc:
            self._logger.warning("session.frame_undecodable", error=str(exc))
            return

        self.last_activity = self._clock()
        if event.kind is EventKind.PING:
            if event.event_id is not None:
                self._outbox.put_nowait(pong_frame(event.event_id))
            return
        if event.kind is EventKind.METADATA:
            self._logger.info("session.metadata", conversation_id=event.conversation_id)
            return
        if event.kind is EventKind.UNKNOWN:
            self._logger.debug("session.event_ignored", event_type=event.raw_type)
            return

        self.aggregator.apply(event)
        # explicit completion signals should not wait for the next poll tick
        if self.aggregator.final_ready:
            self.aggregator.check()

    async def _read_loop(self) -> None:
        reason = "closed by agent"
        try:
            async for raw in self._connection:
                self.handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
            self._logger.warning("session.read_failed", error=reason)
        await self.close(reason)

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self._connection.send(frame)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                reason = f"send failed: {type(exc).__name__}: {exc}"
                self._logger.warning("session.write_failed", error=reason)
                # close() cancels the other tasks; this one returns on its own
                await self.close(reason)
                return

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.policy.poll_interval)
            self.aggregator.check()


__all__ = ["AgentConnection", "ConversationSession"]
