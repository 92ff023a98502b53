"""Re-chunk arbitrary PCM buffers into fixed-size spotter frames."""

from __future__ import annotations

BYTES_PER_SAMPLE = 2


class FrameAligner:
    """Accumulates int16 PCM and hands out whole frames in arrival order.

    Every byte pushed is emitted exactly once, inside exactly one frame; a
    trailing partial frame waits for the next push.
    """

    def __init__(self, frame_samples: int) -> None:
        if frame_samples <= 0:
            raise ValueError("frame_samples must be positive")
        self.frame_samples = frame_samples
        self.frame_bytes = frame_samples * BYTES_PER_SAMPLE
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def push(self, chunk: bytes) -> list[bytes]:
        self._buffer.extend(chunk)
        usable = len(self._buffer) - len(self._buffer) % self.frame_bytes
        if usable == 0:
            return []
        frames = [
            bytes(self._buffer[offset : offset + self.frame_bytes])
            for offset in range(0, usable, self.frame_bytes)
        ]
        del self._buffer[:usable]
        return frames

    def drain(self) -> bytes:
        """Return and forget the incomplete tail."""
        tail = bytes(self._buffer)
        self._buffer.clear()
        return tail

    def reset(self) -> None:
        self._buffer.clear()


__all__ = ["BYTES_PER_SAMPLE", "FrameAligner"]
