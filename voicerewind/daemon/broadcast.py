"""Fan-out of control messages to every connected browser client."""

from __future__ import annotations

import asyncio
import itertools
import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from starlette.websockets import WebSocket, WebSocketState

from voicerewind.common.structured_logging import get_logger

from .intents import IntentMessage

logger = get_logger(__name__, service_name="voicerewind")


class ClientState(str, Enum):
    """Connection states reported in channel statistics."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class DuplexClient(Protocol):
    """What the channel needs from a client connection."""

    client_id: str

    @property
    def state(self) -> ClientState: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


_client_ids = itertools.count(1)


class WebSocketClient:
    """Adapts a Starlette WebSocket to :class:`DuplexClient`."""

    def __init__(self, websocket: WebSocket, client_id: str | None = None) -> None:
        self._websocket = websocket
        self.client_id = client_id or f"client-{next(_client_ids)}"
        self._closing = False
        self._broken = False

    @property
    def state(self) -> ClientState:
        if self._broken:
            return ClientState.CLOSED
        app_state = self._websocket.application_state
        client_state = self._websocket.client_state
        if WebSocketState.DISCONNECTED in (app_state, client_state):
            return ClientState.CLOSED
        if self._closing:
            return ClientState.CLOSING
        if app_state == WebSocketState.CONNECTED and client_state == WebSocketState.CONNECTED:
            return ClientState.OPEN
        return ClientState.CONNECTING

    async def send_text(self, data: str) -> None:
        try:
            await self._websocket.send_text(data)
        except Exception:
            self._broken = True
            raise

    async def close(self, code: int = 1000) -> None:
        if self.state is ClientState.CLOSED:
            return
        self._closing = True
        try:
            await self._websocket.close(code=code)
        finally:
            self._broken = True


@dataclass(slots=True)
class BroadcastResult:
    """Outcome of one fan-out; failures are counted, never raised."""

    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def delivered(self) -> bool:
        return self.sent > 0

    def to_dict(self) -> dict[str, Any]:
        return {"sent": self.sent, "failed": self.failed, "skipped": self.skipped}


class BroadcastChannel:
    """Tracks connected clients and writes frames to the open ones."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clients: dict[str, DuplexClient] = {}
        self._clock = clock
        self._frames_sent = 0

    def add(self, client: DuplexClient) -> None:
        self._clients[client.client_id] = client
        logger.info(
            "broadcast.client_connected",
            client_id=client.client_id,
            clients=len(self._clients),
        )

    def remove(self, client: DuplexClient) -> None:
        if self._clients.pop(client.client_id, None) is not None:
            logger.info(
                "broadcast.client_disconnected",
                client_id=client.client_id,
                clients=len(self._clients),
            )

    def __len__(self) -> int:
        return len(self._clients)

    async def broadcast(self, message: IntentMessage) -> BroadcastResult:
        """Send ``message`` to every open client."""
        result = await self._fan_out(message.to_json())
        logger.info(
            "broadcast.sent",
            intent=message.kind.value,
            **result.to_dict(),
        )
        return result

    async def ping_all(self) -> BroadcastResult:
        """Send a heartbeat frame to open clients and forget closed ones."""
        self.prune()
        frame = json.dumps(
            {"type": "ping", "timestamp": int(self._clock() * 1000)},
            separators=(",", ":"),
        )
        result = await self._fan_out(frame)
        if result.failed:
            logger.warning("broadcast.ping_failures", **result.to_dict())
        return result

    def prune(self) -> int:
        """Drop clients whose connection is closed; return how many."""
        closed = [
            client_id
            for client_id, client in self._clients.items()
            if client.state is ClientState.CLOSED
        ]
        for client_id in closed:
            del self._clients[client_id]
        if closed:
            logger.debug("broadcast.pruned", count=len(closed))
        return len(closed)

    def stats(self) -> dict[str, int]:
        counts = {state.value: 0 for state in ClientState}
        for client in self._clients.values():
            counts[client.state.value] += 1
        counts["total"] = len(self._clients)
        counts["frames_sent"] = self._frames_sent
        return counts

    async def close(self) -> None:
        """Close every client connection; used on shutdown."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            try:
                await client.close(code=1001)
            except Exception as exc:
                logger.debug(
                    "broadcast.close_failed", client_id=client.client_id, error=str(exc)
                )
        logger.info("broadcast.closed", clients=len(clients))

    async def _fan_out(self, frame: str) -> BroadcastResult:
        result = BroadcastResult()
        targets: list[DuplexClient] = []
        for client in list(self._clients.values()):
            if client.state is ClientState.OPEN:
                targets.append(client)
            else:
                result.skipped += 1

        outcomes = await asyncio.gather(
            *(client.send_text(frame) for client in targets),
            return_exceptions=True,
        )
        for client, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                result.failed += 1
                result.errors[client.client_id] = f"{type(outcome).__name__}: {outcome}"
                logger.warning(
                    "broadcast.client_send_failed",
                    client_id=client.client_id,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
            else:
                result.sent += 1
        self._frames_sent += result.sent
        return result


__all__ = [
    "BroadcastChannel",
    "BroadcastResult",
    "ClientState",
    "DuplexClient",
    "WebSocketClient",
]
