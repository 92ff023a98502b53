"""Turn aggregation for one conversational session.

The agent streams text, corrections, audio chunks and completion signals with
no reliable end-of-turn marker. :class:`TurnAggregator` buffers them and
decides, on a poll, when the current turn is complete:

1. an explicit completion (done signal, final text, correction) finalizes at once;
2. buffered audio finalizes once no chunk has arrived for ``audio_idle``;
3. text without audio finalizes once no turn event has arrived for ``text_idle``;
4. an ask that has waited ``max_wait`` finalizes with whatever is buffered.

Finalization resets the buffers and resolves the oldest pending ask, so
results are delivered in the order the asks were sent.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from voicerewind.common.audio import DEFAULT_SAMPLE_RATE, pcm_to_wav
from voicerewind.common.structured_logging import get_logger

from .events import ConversationEvent, EventKind
from .sanitize import sanitize_agent_text

if TYPE_CHECKING:
    from voicerewind.common.config import TurnPolicyConfig


@dataclass(slots=True, frozen=True)
class TurnPolicy:
    """Finalization thresholds, in seconds."""

    poll_interval: float = 0.3
    audio_idle: float = 1.2
    text_idle: float = 3.0
    max_wait: float = 30.0
    sample_rate: int = DEFAULT_SAMPLE_RATE

    @classmethod
    def from_config(cls, config: TurnPolicyConfig) -> TurnPolicy:
        return cls(
            poll_interval=config.poll_interval,
            audio_idle=config.audio_idle,
            text_idle=config.text_idle,
            max_wait=config.max_wait,
        )


class FinalizeReason(Enum):
    SIGNALED = "signaled"
    AUDIO_IDLE = "audio_idle"
    TEXT_IDLE = "text_idle"
    TIMEOUT = "timeout"


@dataclass(slots=True, frozen=True)
class TurnResult:
    """What one turn produced; ``audio_url`` is None when no audio arrived."""

    text: str
    audio_url: str | None = None
    reason: FinalizeReason = FinalizeReason.SIGNALED

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "audioUrl": self.audio_url, "reason": self.reason.value}


class MediaSink(Protocol):
    def save_media(self, data: bytes, extension: str) -> str: ...


@dataclass(slots=True)
class _PendingAsk:
    future: asyncio.Future[TurnResult]
    enqueued_at: float


class TurnAggregator:
    """Buffers streamed events and resolves pending asks in FIFO order.

    All methods are synchronous and must be called from the event loop thread;
    each one leaves the buffers consistent before returning.
    """

    def __init__(
        self,
        policy: TurnPolicy | None = None,
        media: MediaSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        session_id: str = "",
    ) -> None:
        self.policy = policy or TurnPolicy()
        self._media = media
        self._clock = clock
        self._logger = get_logger(
            __name__, session_id=session_id or None, service_name="voicerewind"
        )
        self._pending: deque[_PendingAsk] = deque()
        self._text = ""
        self._chunks: list[bytes] = []
        self._response_seen = False
        self._final_ready = False
        self._last_event_at = clock()
        self._last_audio_at = 0.0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def text(self) -> str:
        return self._text

    @property
    def audio_bytes(self) -> int:
        return sum(len(chunk) for chunk in self._chunks)

    @property
    def final_ready(self) -> bool:
        return self._final_ready

    def enqueue(self) -> asyncio.Future[TurnResult]:
        """Register an ask and return the future its result will resolve."""
        if not self._pending and (self._text or self._chunks or self._final_ready):
            # nobody was waiting, so this content answers no outstanding ask
            self._logger.debug(
                "turn.stale_buffers_discarded",
                text_chars=len(self._text),
                audio_bytes=self.audio_bytes,
            )
            self._reset_buffers()
        future: asyncio.Future[TurnResult] = asyncio.get_running_loop().create_future()
        self._pending.append(_PendingAsk(future=future, enqueued_at=self._clock()))
        return future

    def apply(self, event: ConversationEvent) -> None:
        """Fold one event into the turn buffers."""
        kind = event.kind
        if kind in (EventKind.PING, EventKind.METADATA, EventKind.UNKNOWN):
            return

        now = self._clock()
        self._last_event_at = now

        if kind is EventKind.TEXT_PARTIAL:
            if event.text:
                self._text = event.text
                self._response_seen = True
            if event.is_final:
                self._final_ready = True
        elif kind is EventKind.TEXT_TENTATIVE:
            if event.text and not self._text:
                self._text = event.text
        elif kind is EventKind.TEXT_CORRECTION:
            if event.text:
                self._text = event.text
                self._response_seen = True
            self._final_ready = True
        elif kind is EventKind.AUDIO:
            if event.audio:
                self._chunks.append(event.audio)
                self._last_audio_at = now
        elif kind is EventKind.DONE:
            self._final_ready = True

    def finalize_reason(self, now: float | None = None) -> FinalizeReason | None:
        """Return why the current turn is complete, or None to keep waiting."""
        if not self._pending:
            return None
        now = self._clock() if now is None else now
        if self._final_ready:
            return FinalizeReason.SIGNALED
        if self._chunks and now - self._last_audio_at > self.policy.audio_idle:
            return FinalizeReason.AUDIO_IDLE
        if self._response_seen and now - self._last_event_at > self.policy.text_idle:
            return FinalizeReason.TEXT_IDLE
        if now - self._pending[0].enqueued_at > self.policy.max_wait:
            return FinalizeReason.TIMEOUT
        return None

    def check(self, now: float | None = None) -> TurnResult | None:
        """Finalize if the policy says so; called on every poll tick."""
        reason = self.finalize_reason(now)
        if reason is None:
            return None
        return self.finalize(reason)

    def finalize(self, reason: FinalizeReason = FinalizeReason.SIGNALED) -> TurnResult:
        """Close the current turn and resolve the oldest pending ask."""
        text = sanitize_agent_text(self._text)
        pcm = b"".join(self._chunks)
        self._reset_buffers()

        audio_url = self._persist_audio(pcm) if pcm else None
        result = TurnResult(text=text, audio_url=audio_url, reason=reason)

        if not self._pending:
            self._logger.debug("turn.finalized_without_waiter", reason=reason.value)
            return result

        ask = self._pending.popleft()
        if ask.future.done():
            # the caller gave up; its answer must not leak into the next ask
            self._logger.info("turn.result_dropped", reason=reason.value)
        else:
            ask.future.set_result(result)
        self._logger.info(
            "turn.finalized",
            reason=reason.value,
            text_chars=len(text),
            audio_bytes=len(pcm),
            has_audio=audio_url is not None,
            waited_seconds=round(self._clock() - ask.enqueued_at, 3),
            still_pending=len(self._pending),
        )
        return result

    def fail_all(self, error: BaseException) -> int:
        """Reject every pending ask with ``error``; return how many."""
        failed = 0
        while self._pending:
            ask = self._pending.popleft()
            if not ask.future.done():
                ask.future.set_exception(error)
                failed += 1
        self._reset_buffers()
        if failed:
            self._logger.warning("turn.pending_rejected", count=failed, error=str(error))
        return failed

    def _reset_buffers(self) -> None:
        self._text = ""
        self._chunks = []
        self._response_seen = False
        self._final_ready = False
        self._last_audio_at = 0.0
        self._last_event_at = self._clock()

    def _persist_audio(self, pcm: bytes) -> str | None:
        if self._media is None:
            return None
        try:
            return self._media.save_media(
                pcm_to_wav(pcm, sample_rate=self.policy.sample_rate), "wav"
            )
        except OSError as exc:
            self._logger.error("turn.audio_persist_failed", error=str(exc))
            return None


__all__ = [
    "FinalizeReason",
    "MediaSink",
    "TurnAggregator",
    "TurnPolicy",
    "TurnResult",
]
