"""Shared infrastructure: logging, configuration, health and audio helpers."""
