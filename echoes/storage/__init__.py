"""Local storage of recordings."""

from .recording_store import RecordingStore

__all__ = [
    "RecordingStore",
]
