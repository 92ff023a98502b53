"""Test fixtures for daemon tests."""

from __future__ import annotations

import asyncio
import base64
import json
from collections.abc import Callable
from typing import Any

import pytest

from voicerewind.daemon.broadcast import ClientState
from voicerewind.daemon.cache import CacheStore
from voicerewind.daemon.transcripts import TranscriptSegment


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


_CLOSE = object()
_DROP = object()


class FakeConnection:
    """In-memory stand-in for an agent websocket connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.fail_send = False
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.fail_send:
            raise ConnectionResetError("socket gone")
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self._inbound.put_nowait(_CLOSE)

    def push(self, frame: dict[str, Any] | str) -> None:
        self._inbound.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        """Make the read loop fail as if the network went away."""
        self._inbound.put_nowait(_DROP)

    def sent_frames(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    def __aiter__(self) -> FakeConnection:
        return self

    async def __anext__(self) -> str:
        item = await self._inbound.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if item is _DROP:
            raise ConnectionResetError("connection reset by peer")
        return item


class FakeConnector:
    """Hands out FakeConnections and records how often it was asked."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.fail = fail
        self.connections: list[FakeConnection] = []
        self.calls = 0

    async def connect(self) -> FakeConnection:
        self.calls += 1
        # let concurrent callers pile up behind the handshake
        await asyncio.sleep(0)
        if self.fail is not None:
            raise self.fail
        connection = FakeConnection()
        self.connections.append(connection)
        return connection


class FakeClient:
    """Broadcast channel client that records frames."""

    def __init__(
        self,
        client_id: str,
        state: ClientState = ClientState.OPEN,
        fail: bool = False,
    ) -> None:
        self.client_id = client_id
        self.state = state
        self.fail = fail
        self.frames: list[str] = []
        self.close_code: int | None = None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("client went away")
        self.frames.append(data)

    async def close(self, code: int = 1000) -> None:
        self.state = ClientState.CLOSED
        self.close_code = code


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_store(tmp_path, clock) -> CacheStore:
    store = CacheStore(tmp_path / "cache", clock=clock)
    store.ensure_dirs()
    return store


@pytest.fixture
def segments() -> list[TranscriptSegment]:
    return [
        TranscriptSegment(text="Welcome back to the channel", start=0.0, duration=4.0),
        TranscriptSegment(text="Today we talk about sourdough", start=4.0, duration=5.0),
        TranscriptSegment(text="First, feed your starter", start=60.0, duration=3.5),
        TranscriptSegment(text="Now shape the loaf gently", start=200.0, duration=4.0),
    ]


@pytest.fixture
def agent_frame() -> Callable[..., dict[str, Any]]:
    """Build conversational agent frames by kind."""

    def _frame(kind: str, value: Any = None, **extra: Any) -> dict[str, Any]:
        if kind == "partial":
            event = {"agent_response": value}
            event.update(extra)
            return {"type": "agent_response", "agent_response_event": event}
        if kind == "tentative":
            return {
                "type": "internal_tentative_agent_response",
                "tentative_agent_response_internal_event": {
                    "tentative_agent_response": value
                },
            }
        if kind == "correction":
            return {
                "type": "agent_response_correction",
                "agent_response_correction_event": {"corrected_agent_response": value},
            }
        if kind == "audio":
            return {
                "type": "audio",
                "audio_event": {"audio_base_64": base64.b64encode(value).decode()},
            }
        if kind == "ping":
            return {"type": "ping", "ping_event": {"event_id": value}}
        if kind == "metadata":
            return {
                "type": "conversation_initiation_metadata",
                "conversation_initiation_metadata_event": {"conversation_id": value},
            }
        return {"type": kind}

    return _frame


@pytest.fixture
def make_client() -> type[FakeClient]:
    return FakeClient


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def failing_connector() -> FakeConnector:
    return FakeConnector(fail=ConnectionRefusedError("agent unreachable"))
