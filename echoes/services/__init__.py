"""Services layer for Echoes application logic."""

from .capture_session import CaptureSession
from .session_controller import SessionController, parse_session_parameters
from .transcription_service import TranscriptionService

__all__ = [
    "CaptureSession",
    "SessionController",
    "parse_session_parameters",
    "TranscriptionService",
]
