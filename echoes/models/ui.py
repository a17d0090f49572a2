"""UI-related data models."""

from dataclasses import dataclass
from typing import List, Optional

from .session import SessionStatus


@dataclass
class RecorderView:
    """What the recorder window shows at a given moment."""
    state: SessionStatus = SessionStatus.STARTING
    elapsed_label: str = "0:00"
    levels: List[float] = None
    error: Optional[str] = None
    saved: bool = False
    actions: List[str] = None

    def __post_init__(self):
        if self.levels is None:
            self.levels = []
        if self.actions is None:
            self.actions = []
