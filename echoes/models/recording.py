"""Data models for persisted recordings."""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, Dict, Any


class TranscriptionStatus(Enum):
    """Transcription progress of a stored recording."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class Recording:
    """A finished recording as kept by the recording store."""
    id: str
    name: str
    duration: int  # Seconds
    created_at: int  # Unix epoch milliseconds
    size: int  # Bytes of audio payload
    audio_file: str  # File name inside the recording directory
    mime_type: str = "audio/wav"
    transcription: Optional[str] = None
    transcription_status: TranscriptionStatus = TranscriptionStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['transcription_status'] = self.transcription_status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recording":
        data = dict(data)
        data['transcription_status'] = TranscriptionStatus(
            data.get('transcription_status') or TranscriptionStatus.PENDING.value
        )
        return cls(**data)
