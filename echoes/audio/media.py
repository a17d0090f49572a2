"""Media stream and track primitives shared by every audio component.

Audio frames travel from a track to its consumers over a per-track pubsub
topic, the same way captured chunks are published in the rest of the app.
Frames are mono ``int16`` numpy arrays at the platform sample rate.
"""

import uuid
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import numpy as np
from pubsub import pub

logger = logging.getLogger(__name__)


@dataclass
class MediaConstraints:
    """What to ask the platform for when opening a stream."""
    audio: bool = True
    video: bool = False
    media_source: Optional[str] = None  # "tab" for tab capture
    media_source_id: Optional[str] = None  # Capture token for tab capture
    device_id: Optional[str] = None  # Exact input device match


class MediaStreamTrack:
    """A single live audio or video track."""

    def __init__(self, kind: str = "audio", label: str = "",
                 on_stop: Optional[Callable[[], None]] = None):
        self.id = uuid.uuid4().hex
        self.kind = kind
        self.label = label
        self.ready_state = "live"
        self.topic = f"track_{self.id}"
        self._on_stop = on_stop
        self._listeners: List[Callable] = []
        self._ended_listeners: List[Callable[["MediaStreamTrack"], None]] = []

    def subscribe(self, listener: Callable[..., None]) -> None:
        """Receive every frame published on this track as ``listener(frame=...)``."""
        if listener in self._listeners:
            return
        pub.subscribe(listener, self.topic)
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[..., None]) -> None:
        if listener not in self._listeners:
            return
        self._listeners.remove(listener)
        pub.unsubscribe(listener, self.topic)

    def publish(self, frame: np.ndarray) -> None:
        """Deliver a frame to every subscriber. Ignored once the track has ended."""
        if self.ready_state != "live":
            return
        pub.sendMessage(self.topic, frame=frame)

    def add_ended_listener(self, callback: Callable[["MediaStreamTrack"], None]) -> None:
        self._ended_listeners.append(callback)

    def stop(self) -> None:
        """Stop the track and release its platform resource.

        Stopping is idempotent and does not notify ended listeners.
        """
        if self.ready_state == "ended":
            return
        self.ready_state = "ended"
        for listener in list(self._listeners):
            self.unsubscribe(listener)
        if self._on_stop:
            try:
                self._on_stop()
            except Exception as e:
                logger.warning(f"Error releasing track {self.label or self.id}: {e}")
        logger.debug(f"Stopped {self.kind} track {self.label or self.id}")

    def end(self) -> None:
        """Mark the track as ended by its source (device lost, tab closed)."""
        if self.ready_state == "ended":
            return
        logger.info(f"{self.kind} track {self.label or self.id} ended by source")
        self.stop()
        for callback in list(self._ended_listeners):
            callback(self)


class MediaStream:
    """A group of tracks obtained together."""

    def __init__(self, tracks: Optional[Iterable[MediaStreamTrack]] = None):
        self.id = uuid.uuid4().hex
        self._tracks: List[MediaStreamTrack] = list(tracks or [])

    def add_track(self, track: MediaStreamTrack) -> None:
        self._tracks.append(track)

    def get_tracks(self) -> List[MediaStreamTrack]:
        return list(self._tracks)

    def get_audio_tracks(self) -> List[MediaStreamTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    def get_video_tracks(self) -> List[MediaStreamTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    @property
    def active(self) -> bool:
        return any(t.ready_state == "live" for t in self._tracks)

    def stop(self) -> None:
        for track in self._tracks:
            track.stop()


def release_streams(streams: Iterable[MediaStream]) -> None:
    """Stop every track of every stream."""
    for stream in streams:
        stream.stop()
