"""Event models for pub/sub session notifications."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass
class SessionEvent:
    """Capture session lifecycle event."""
    session_id: str
    event_type: str  # "status", "tick", "levels"
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
