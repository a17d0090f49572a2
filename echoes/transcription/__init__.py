"""Transcription module for Echoes."""

from .client import TranscriptionClient
from ..models.transcription import HealthStatus, TranscriptionResponse, TranscriptionSegment

__all__ = [
    "TranscriptionClient",
    "HealthStatus",
    "TranscriptionResponse",
    "TranscriptionSegment",
]
