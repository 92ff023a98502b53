"""PCM/WAV helpers shared by the capture pipeline and the conversational turn.

Audio throughout the daemon is raw little-endian 16-bit PCM. Wrapping it in a
canonical 44-byte RIFF header is all the browser needs to play it back, so no
audio library is involved.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

WAV_HEADER_SIZE = 44
DEFAULT_SAMPLE_RATE = 16000

_RIFF = struct.Struct("<4sI4s")
_FMT = struct.Struct("<4sIHHIIHH")
_DATA = struct.Struct("<4sI")
_PCM_FORMAT = 1


class WavFormatError(ValueError):
    """Raised when bytes do not start with a canonical PCM WAV header."""


@dataclass(slots=True, frozen=True)
class WavHeader:
    """Fields of a canonical PCM WAV header."""

    sample_rate: int
    channels: int
    bits_per_sample: int
    data_size: int
    riff_size: int

    @property
    def sample_width(self) -> int:
        return self.bits_per_sample // 8

    @property
    def duration(self) -> float:
        bytes_per_second = self.sample_rate * self.channels * self.sample_width
        return self.data_size / bytes_per_second if bytes_per_second else 0.0


def build_wav_header(
    data_size: int,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """Return the 44-byte header for ``data_size`` bytes of PCM."""
    if data_size < 0:
        raise ValueError("data_size must be non-negative")
    sample_width = bits_per_sample // 8
    byte_rate = sample_rate * channels * sample_width
    block_align = channels * sample_width
    return (
        _RIFF.pack(b"RIFF", 36 + data_size, b"WAVE")
        + _FMT.pack(
            b"fmt ",
            16,
            _PCM_FORMAT,
            channels,
            sample_rate,
            byte_rate,
            block_align,
            bits_per_sample,
        )
        + _DATA.pack(b"data", data_size)
    )


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """Wrap raw PCM in a WAV container."""
    return build_wav_header(len(pcm), sample_rate, channels, bits_per_sample) + pcm


def parse_wav_header(data: bytes) -> WavHeader:
    """Parse the first 44 bytes of ``data`` as a canonical PCM WAV header."""
    if len(data) < WAV_HEADER_SIZE:
        raise WavFormatError(f"need {WAV_HEADER_SIZE} bytes, got {len(data)}")

    riff_id, riff_size, wave_id = _RIFF.unpack_from(data, 0)
    if riff_id != b"RIFF" or wave_id != b"WAVE":
        raise WavFormatError("missing RIFF/WAVE magic")

    (
        fmt_id,
        fmt_size,
        audio_format,
        channels,
        sample_rate,
        _byte_rate,
        _block_align,
        bits_per_sample,
    ) = _FMT.unpack_from(data, _RIFF.size)
    if fmt_id != b"fmt " or fmt_size != 16 or audio_format != _PCM_FORMAT:
        raise WavFormatError("not an uncompressed PCM fmt chunk")

    data_id, data_size = _DATA.unpack_from(data, _RIFF.size + _FMT.size)
    if data_id != b"data":
        raise WavFormatError("data chunk must follow fmt chunk")

    return WavHeader(
        sample_rate=sample_rate,
        channels=channels,
        bits_per_sample=bits_per_sample,
        data_size=data_size,
        riff_size=riff_size,
    )


def wav_to_pcm(data: bytes) -> tuple[bytes, WavHeader]:
    """Split a canonical WAV blob into its PCM payload and header."""
    header = parse_wav_header(data)
    pcm = data[WAV_HEADER_SIZE : WAV_HEADER_SIZE + header.data_size]
    return pcm, header


def pcm_duration(pcm: bytes, sample_rate: int = DEFAULT_SAMPLE_RATE) -> float:
    """Duration in seconds of mono 16-bit PCM."""
    return len(pcm) / (2 * sample_rate)


__all__ = [
    "DEFAULT_SAMPLE_RATE",
    "WAV_HEADER_SIZE",
    "WavFormatError",
    "WavHeader",
    "build_wav_header",
    "parse_wav_header",
    "pcm_duration",
    "pcm_to_wav",
    "wav_to_pcm",
]
