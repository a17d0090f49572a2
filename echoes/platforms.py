"""Detection of supported meeting platforms from a tab address."""

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MeetingPlatform:
    """A meeting platform the recorder can be started on."""
    key: str
    name: str


SUPPORTED_PATTERNS = [
    (re.compile(r'^https://meet\.google\.com/'), MeetingPlatform('meet', 'Google Meet')),
    (re.compile(r'^https://teams\.microsoft\.com/'), MeetingPlatform('teams', 'Microsoft Teams')),
    (re.compile(r'^https://teams\.live\.com/'), MeetingPlatform('teams', 'Microsoft Teams')),
    (re.compile(r'^https://.*\.zoom\.us/'), MeetingPlatform('zoom', 'Zoom')),
]


def detect_meeting_platform(url: Optional[str]) -> Optional[MeetingPlatform]:
    """Return the meeting platform for a tab address, or None if unsupported."""
    if not url:
        return None
    for pattern, platform in SUPPORTED_PATTERNS:
        if pattern.match(url):
            return platform
    return None
