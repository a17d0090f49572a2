"""Echoes - meeting audio recorder with local transcription."""

__version__ = "0.1.0"
