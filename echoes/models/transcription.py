"""Response models of the local transcription service."""

from typing import List, Optional

from pydantic import BaseModel


class TranscriptionSegment(BaseModel):
    """A time-stamped piece of transcribed text."""
    start: float
    end: float
    text: str


class TranscriptionResponse(BaseModel):
    """Structured transcription result."""
    text: str
    segments: List[TranscriptionSegment] = []
    language: Optional[str] = None
    language_probability: Optional[float] = None
    duration: Optional[float] = None


class HealthStatus(BaseModel):
    """Result of the service health check."""
    status: str
    model_loaded: bool = False

    @property
    def available(self) -> bool:
        return self.status == "ok" and self.model_loaded
