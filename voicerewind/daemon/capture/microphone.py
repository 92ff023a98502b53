"""Microphone input as an async stream of PCM chunks."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import sounddevice as sd

from voicerewind.common.structured_logging import get_logger

logger = get_logger(__name__, service_name="voicerewind")

QUEUE_CHUNKS = 500


class MicrophoneSource:
    """Mono int16 input from sounddevice.

    The PortAudio callback runs on its own thread and only hands each block to
    the event loop; all queue mutations happen on the loop.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        blocksize: int = 1280,
        device: str | int | None = None,
        max_chunks: int = QUEUE_CHUNKS,
    ) -> None:
        self.sample_rate = sample_rate
        self.blocksize = blocksize
        self.device = device
        self.dropped_chunks = 0
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max_chunks)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stream: sd.RawInputStream | None = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self) -> None:
        """Open and start the input stream; raises sounddevice.PortAudioError."""
        if self._stream is not None:
            return
        self._loop = asyncio.get_running_loop()
        device: str | int | None = self.device
        if isinstance(device, str) and device.isdigit():
            device = int(device)
        stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="int16",
            blocksize=self.blocksize,
            device=device,
            callback=self._callback,
        )
        stream.start()
        self._stream = stream
        logger.info(
            "microphone.opened",
            sample_rate=self.sample_rate,
            blocksize=self.blocksize,
            device=self.device,
        )

    def close(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as exc:
            logger.warning("microphone.close_failed", error=str(exc))
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._put, None)
        logger.info("microphone.closed", dropped_chunks=self.dropped_chunks)

    def _callback(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("microphone.status", status=str(status))
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._put, bytes(indata))

    def _put(self, chunk: bytes | None) -> None:
        if chunk is None:
            # end of stream must always get through
            while self._queue.full():
                self._queue.get_nowait()
            self._queue.put_nowait(None)
            return
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            self.dropped_chunks += 1

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk


__all__ = ["MicrophoneSource"]
