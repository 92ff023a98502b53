"""Local voice-control daemon for the VoiceRewind YouTube assistant."""

__version__ = "0.1.0"
