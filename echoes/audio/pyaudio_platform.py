"""PyAudio-backed media platform.

Tab capture reads from a loopback input (the configured monitor/loopback
device); microphones are opened by device index. PyAudio delivers audio on its
own thread, so every frame is handed to the asyncio loop before it is
published on the track.
"""

import time
import asyncio
import logging
import secrets
import threading
from typing import Dict, List, Optional, Tuple

import numpy as np
import pyaudio

from ..models.audio import AudioDevice
from .media import MediaConstraints, MediaStream, MediaStreamTrack
from .platform import AbstractAudioSink, AbstractMediaPlatform

logger = logging.getLogger(__name__)

# Seconds a tab capture token stays valid
TAB_CAPTURE_TOKEN_TTL = 5.0

# Seconds of audio the speaker buffer holds before dropping old samples
SPEAKER_BUFFER_SECONDS = 0.5

# Seconds between checks that an input stream is still running
STREAM_WATCHDOG_INTERVAL = 0.5


class PyAudioSpeakerSink(AbstractAudioSink):
    """Callback-driven output stream fed from a bounded buffer."""

    def __init__(self, pyaudio_instance: pyaudio.PyAudio, sample_rate: int,
                 channels: int, frames_per_buffer: int):
        self.sample_rate = sample_rate
        self.channels = channels
        self.max_buffer_bytes = int(sample_rate * channels * 2 * SPEAKER_BUFFER_SECONDS)
        self.buffer = bytearray()
        self.lock = threading.Lock()
        self.stream = pyaudio_instance.open(
            format=pyaudio.paInt16,
            channels=channels,
            rate=sample_rate,
            output=True,
            frames_per_buffer=frames_per_buffer,
            stream_callback=self._fill,
        )
        self.closed = False

    def _fill(self, in_data, frame_count, time_info, status):
        wanted = frame_count * self.channels * 2
        with self.lock:
            data = bytes(self.buffer[:wanted])
            del self.buffer[:wanted]
        if len(data) < wanted:
            data += b'\x00' * (wanted - len(data))
        return data, pyaudio.paContinue

    def write(self, frame: np.ndarray) -> None:
        if self.closed:
            return
        with self.lock:
            self.buffer.extend(frame.astype(np.int16).tobytes())
            overflow = len(self.buffer) - self.max_buffer_bytes
            if overflow > 0:
                del self.buffer[:overflow]

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.stream.stop_stream()
        self.stream.close()
        logger.debug("Speaker output closed")


class PyAudioPlatform(AbstractMediaPlatform):
    """Media platform reading from local input devices through PyAudio."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1,
                 frames_per_buffer: int = 1024,
                 tab_loopback_device: Optional[str] = None):
        """Initialize the platform.

        Args:
            sample_rate: Sample rate for every opened stream
            channels: Number of channels (1 for mono)
            frames_per_buffer: Frames per PyAudio callback
            tab_loopback_device: Name fragment of the loopback input that
                carries tab audio
        """
        super().__init__(sample_rate=sample_rate, channels=channels)
        self.frames_per_buffer = frames_per_buffer
        self.tab_loopback_device = tab_loopback_device
        self.pyaudio_instance = pyaudio.PyAudio()
        self._tokens: Dict[str, Tuple[int, int, float]] = {}

    def _input_devices(self) -> List[Tuple[int, dict]]:
        devices = []
        for index in range(self.pyaudio_instance.get_device_count()):
            info = self.pyaudio_instance.get_device_info_by_index(index)
            if info.get('maxInputChannels', 0) > 0:
                devices.append((index, info))
        return devices

    def enumerate_devices(self) -> List[AudioDevice]:
        result = []
        for index, info in self._input_devices():
            device_id = str(index)
            label = info.get('name') or f"Microphone {device_id[:8]}"
            result.append(AudioDevice(device_id=device_id, label=label))
        return result

    def _find_loopback_device(self) -> int:
        if not self.tab_loopback_device:
            raise LookupError("No loopback device configured for tab capture")
        fragment = self.tab_loopback_device.lower()
        for index, info in self._input_devices():
            if fragment in info.get('name', '').lower():
                return index
        raise LookupError(f"Loopback device not found: {self.tab_loopback_device}")

    async def get_media_stream_id(self, target_tab_id: int) -> str:
        device_index = self._find_loopback_device()
        token = secrets.token_hex(16)
        self._tokens[token] = (target_tab_id, device_index, time.monotonic() + TAB_CAPTURE_TOKEN_TTL)
        logger.info(f"Issued capture token for tab {target_tab_id} (device {device_index})")
        return token

    def _redeem_token(self, token: Optional[str]) -> Tuple[int, int]:
        entry = self._tokens.pop(token, None) if token else None
        if entry is None:
            raise PermissionError("Unknown tab capture token")
        tab_id, device_index, expires_at = entry
        if time.monotonic() > expires_at:
            raise PermissionError("Tab capture token expired")
        return tab_id, device_index

    def _resolve_device(self, device_id: str) -> int:
        try:
            index = int(device_id)
        except (TypeError, ValueError):
            raise LookupError(f"Requested device not found: {device_id}")
        if index not in [i for i, _ in self._input_devices()]:
            raise LookupError(f"Requested device not found: {device_id}")
        return index

    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        if not constraints.audio:
            raise ValueError("Only audio streams are supported")

        if constraints.media_source == "tab":
            tab_id, device_index = self._redeem_token(constraints.media_source_id)
            label = f"tab-{tab_id}"
        elif constraints.device_id:
            device_index = self._resolve_device(constraints.device_id)
            label = f"mic-{constraints.device_id}"
        else:
            device_index = self.pyaudio_instance.get_default_input_device_info()['index']
            label = "mic-default"

        # Video is never produced here; callers requesting it get audio only
        track = self._open_input_track(device_index, label, asyncio.get_running_loop())
        return MediaStream([track])

    def _open_input_track(self, device_index: int, label: str,
                          loop: asyncio.AbstractEventLoop) -> MediaStreamTrack:
        holder = {}

        def on_audio(in_data, frame_count, time_info, status):
            if status & pyaudio.paInputOverflow:
                logger.debug(f"Input overflow on {label}")
            frame = np.frombuffer(in_data, dtype=np.int16).copy()
            track = holder['track']
            try:
                loop.call_soon_threadsafe(track.publish, frame)
            except RuntimeError:
                # Loop already closed
                return None, pyaudio.paComplete
            return None, pyaudio.paContinue

        stream = self.pyaudio_instance.open(
            format=pyaudio.paInt16,
            channels=self.channels,
            rate=self.sample_rate,
            input=True,
            input_device_index=device_index,
            frames_per_buffer=self.frames_per_buffer,
            stream_callback=on_audio,
        )

        def release():
            holder['watchdog'].cancel()
            stream.stop_stream()
            stream.close()

        track = MediaStreamTrack(kind="audio", label=label, on_stop=release)
        holder['track'] = track
        holder['watchdog'] = loop.create_task(self._watch_stream(stream, track))
        logger.info(f"Audio stream opened: {label} on device {device_index}, "
                    f"{self.sample_rate}Hz, {self.frames_per_buffer} samples/buffer")
        return track

    @staticmethod
    async def _watch_stream(stream, track: MediaStreamTrack) -> None:
        """End the track once PortAudio stops the stream on its own (device lost)."""
        while track.ready_state == "live":
            await asyncio.sleep(STREAM_WATCHDOG_INTERVAL)
            if track.ready_state != "live":
                return
            try:
                active = stream.is_active()
            except OSError as e:
                logger.warning(f"Audio stream {track.label} failed: {e}")
                active = False
            if not active:
                logger.warning(f"Audio stream {track.label} is no longer active")
                track.end()

    def open_speaker_output(self) -> AbstractAudioSink:
        return PyAudioSpeakerSink(self.pyaudio_instance, self.sample_rate,
                                  self.channels, self.frames_per_buffer)

    def terminate(self) -> None:
        """Release PyAudio."""
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
