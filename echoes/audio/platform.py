"""Abstract base classes for the media platform the recorder runs on."""

from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ..models.audio import AudioDevice
from .media import MediaConstraints, MediaStream


class AbstractAudioSink(ABC):
    """Local speaker output used for monitoring."""

    @abstractmethod
    def write(self, frame: np.ndarray) -> None:
        """Queue a frame for playback."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the output device."""
        pass


class AbstractMediaPlatform(ABC):
    """Source of live audio streams, capture tokens and speaker output."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels

    @abstractmethod
    async def get_media_stream_id(self, target_tab_id: int) -> str:
        """Obtain a short-lived capture token scoped to a tab.

        Args:
            target_tab_id: Identifier of the tab to capture

        Returns:
            Token accepted once by get_user_media as ``media_source_id``
        """
        pass

    @abstractmethod
    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        """Open a live stream matching the constraints.

        Raises:
            PermissionError: Authorization denied or token invalid
            LookupError: Requested device does not exist
        """
        pass

    @abstractmethod
    def open_speaker_output(self) -> AbstractAudioSink:
        """Open the local speaker output."""
        pass

    @abstractmethod
    def enumerate_devices(self) -> List[AudioDevice]:
        """List available audio input devices."""
        pass
