"""Session-related data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CaptureMode(Enum):
    """Which sources a recording session captures."""
    TAB = "tab"
    MIC = "mic"
    BOTH = "both"

    @property
    def includes_tab(self) -> bool:
        return self in (CaptureMode.TAB, CaptureMode.BOTH)

    @property
    def includes_mic(self) -> bool:
        return self in (CaptureMode.MIC, CaptureMode.BOTH)


class SessionStatus(Enum):
    """Forward-only lifecycle of a capture session."""
    STARTING = "starting"
    RECORDING = "recording"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SessionParameters:
    """Immutable input to a capture session."""
    mode: CaptureMode
    tab_id: Optional[int] = None
    device_id: Optional[str] = None

    @property
    def wants_mic(self) -> bool:
        """True when a microphone stream should actually be opened."""
        return self.mode.includes_mic and bool(self.device_id)
