"""Microphone capture: frame alignment, wake word spotting and command capture.

``wake`` and ``microphone`` pull in openWakeWord and PortAudio and are imported
by the daemon only when audio is enabled.
"""

from .frames import FrameAligner
from .pipeline import CommandHandler, WakeCapturePipeline, WakeDetection, WakeSpotter

__all__ = [
    "CommandHandler",
    "FrameAligner",
    "WakeCapturePipeline",
    "WakeDetection",
    "WakeSpotter",
]
