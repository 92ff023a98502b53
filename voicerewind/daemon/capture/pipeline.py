"""Wake word -> fixed-length capture -> voice command, over a live PCM stream.

The pipeline has two modes. While listening, every aligned frame is scored by
the spotter. After a detection it captures a fixed number of bytes instead,
without scoring them, then hands the capture to the command handler in its
own task and returns to listening. Capture length is counted in bytes, so no
timer is involved and every byte of the stream is used exactly once.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Any, Protocol

from voicerewind.common.audio import DEFAULT_SAMPLE_RATE, pcm_duration
from voicerewind.common.structured_logging import get_logger

from .frames import FrameAligner

logger = get_logger(__name__, service_name="voicerewind")


@dataclass(slots=True)
class WakeDetection:
    """Details about a detected wake word."""

    keyword: str
    confidence: float


class WakeSpotter(Protocol):
    frame_length: int

    def process(self, frame: bytes) -> WakeDetection | None: ...

    def reset(self) -> None: ...


class CommandHandler(Protocol):
    async def on_wake(self, detection: WakeDetection) -> Any: ...

    async def handle(self, pcm: bytes) -> Any: ...

    async def on_abandoned(self, reason: str) -> Any: ...


class WakeCapturePipeline:
    def __init__(
        self,
        source: AsyncIterable[bytes],
        spotter: WakeSpotter,
        handler: CommandHandler,
        capture_seconds: float = 3.5,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        offload_inference: bool = True,
    ) -> None:
        self._source = source
        self._spotter = spotter
        self._handler = handler
        self._offload = offload_inference
        self.sample_rate = sample_rate
        self._aligner = FrameAligner(spotter.frame_length)

        frames = math.ceil(capture_seconds * sample_rate / spotter.frame_length)
        self.capture_bytes = max(frames, 1) * self._aligner.frame_bytes
        self.detections = 0
        self.ignored_detections = 0
        self.commands_handled = 0

        self._capture: bytearray | None = None
        self._command_task: asyncio.Task[None] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def capturing(self) -> bool:
        return self._capture is not None

    @property
    def busy(self) -> bool:
        """A command is being captured or handled."""
        return self.capturing or (
            self._command_task is not None and not self._command_task.done()
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self.run(), name="wake-capture-pipeline")
        logger.info(
            "pipeline.started",
            frame_samples=self._aligner.frame_samples,
            capture_bytes=self.capture_bytes,
        )

    async def stop(self) -> None:
        tasks = [task for task in (self._task, self._command_task) if task is not None]
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._command_task = None
        await self._abandon_capture("stopped")
        self._aligner.reset()
        logger.info(
            "pipeline.stopped",
            detections=self.detections,
            commands_handled=self.commands_handled,
        )

    async def run(self) -> None:
        """Consume the source until it ends."""
        try:
            async for chunk in self._source:
                await self.feed(chunk)
        except asyncio.CancelledError:
            await self._abandon_capture("cancelled")
            raise
        except Exception as exc:
            logger.error("pipeline.source_failed", error=str(exc), exc_info=True)
            await self._abandon_capture("source_failed")
            raise
        # a capture cut short by the end of input is still handled so the
        # listening state always gets closed
        if self._capture is not None:
            pcm = bytes(self._capture) + self._aligner.drain()
            self._capture = None
            self._dispatch(pcm)
        logger.info("pipeline.source_ended")

    async def feed(self, chunk: bytes) -> None:
        """Process one chunk of PCM of any length."""
        for frame in self._aligner.push(chunk):
            await self._process_frame(frame)

    async def wait_idle(self) -> None:
        """Wait for the command in flight, if any."""
        if self._command_task is not None:
            await asyncio.gather(self._command_task, return_exceptions=True)

    async def _process_frame(self, frame: bytes) -> None:
        if self._capture is not None:
            self._capture.extend(frame)
            if len(self._capture) >= self.capture_bytes:
                pcm = bytes(self._capture)
                self._capture = None
                self._dispatch(pcm)
            return

        if self._offload:
            detection = await asyncio.to_thread(self._spotter.process, frame)
        else:
            detection = self._spotter.process(frame)
        if detection is None:
            return

        self.detections += 1
        if self.busy:
            self.ignored_detections += 1
            logger.info(
                "pipeline.detection_ignored",
                keyword=detection.keyword,
                reason="command_in_progress",
            )
            return

        logger.info(
            "pipeline.wake_detected",
            keyword=detection.keyword,
            confidence=round(detection.confidence, 3),
        )
        self._spotter.reset()
        self._capture = bytearray()
        await self._handler.on_wake(detection)

    def _dispatch(self, pcm: bytes) -> None:
        self._command_task = asyncio.create_task(
            self._handle(pcm), name="voice-command"
        )

    async def _abandon_capture(self, reason: str) -> None:
        """Drop an unfinished capture and let the handler close the listening state."""
        if self._capture is None:
            return
        dropped = len(self._capture) + self._aligner.buffered
        self._capture = None
        self._aligner.reset()
        logger.warning("pipeline.capture_abandoned", reason=reason, audio_bytes=dropped)
        try:
            await self._handler.on_abandoned(reason)
        except Exception as exc:
            logger.error("pipeline.abandon_failed", error=str(exc), exc_info=True)

    async def _handle(self, pcm: bytes) -> None:
        duration = pcm_duration(pcm, self.sample_rate)
        logger.debug("pipeline.command_captured", audio_bytes=len(pcm), seconds=duration)
        try:
            await self._handler.handle(pcm)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("pipeline.command_failed", error=str(exc), exc_info=True)
        finally:
            self.commands_handled += 1


__all__ = ["CommandHandler", "WakeCapturePipeline", "WakeDetection", "WakeSpotter"]
