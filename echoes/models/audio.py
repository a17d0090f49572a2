"""Audio-related data models."""

from dataclasses import dataclass


@dataclass
class AudioDevice:
    """An audio input device that can be selected for capture."""
    device_id: str
    label: str
    kind: str = "audioinput"
