"""Data models for the Echoes application."""

from .audio import AudioDevice
from .events import SessionEvent
from .recording import Recording, TranscriptionStatus
from .session import CaptureMode, SessionParameters, SessionStatus
from .transcription import HealthStatus, TranscriptionResponse, TranscriptionSegment
from .ui import RecorderView

__all__ = [
    "AudioDevice",
    "SessionEvent",
    "Recording",
    "TranscriptionStatus",
    "CaptureMode",
    "SessionParameters",
    "SessionStatus",
    "HealthStatus",
    "TranscriptionResponse",
    "TranscriptionSegment",
    "RecorderView",
]
