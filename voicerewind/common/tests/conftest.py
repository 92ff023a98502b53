"""Test fixtures for common module tests."""

from collections.abc import Callable, Generator

import numpy as np
import pytest
import structlog


@pytest.fixture
def generate_test_audio() -> Callable[..., bytes]:
    """Generate mono 16-bit PCM containing a sine tone."""

    def _generate_audio(
        sample_rate: int = 16000, duration: float = 1.0, frequency: float = 440.0
    ) -> bytes:
        t = np.linspace(0, duration, int(sample_rate * duration), False)
        audio_float = np.sin(2 * np.pi * frequency * t) * 0.5
        return (audio_float * 32767).astype(np.int16).tobytes()

    return _generate_audio


@pytest.fixture
def isolated_structlog() -> Generator[None, None, None]:
    """Reset structlog configuration between tests."""
    original_config = structlog.get_config()
    yield
    structlog.configure(**original_config)


