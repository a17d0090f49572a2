"""Pytest configuration and fixtures for Echoes tests."""

import pytest
import tempfile
import asyncio
import logging
import wave
from pathlib import Path
from typing import List, Optional
from unittest.mock import Mock, patch
import numpy as np

from echoes.audio.media import MediaConstraints, MediaStream, MediaStreamTrack
from echoes.audio.platform import AbstractAudioSink, AbstractMediaPlatform
from echoes.config import EchoesConfig
from echoes.models.audio import AudioDevice
from echoes.storage.recording_store import RecordingStore


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: end-to-end tests across components")
    config.addinivalue_line("markers", "hardware: tests that need real audio devices")
    config.addinivalue_line("markers", "slow: tests that take more than a second")


class FakeSink(AbstractAudioSink):
    """Speaker output that remembers what was played."""

    def __init__(self):
        self.frames: List[np.ndarray] = []
        self.closed = False

    def write(self, frame):
        self.frames.append(frame.copy())

    def close(self):
        self.closed = True


class FakePlatform(AbstractMediaPlatform):
    """In-memory media platform.

    Tracks are created on request and never produce audio on their own; tests
    push frames with ``track.publish``.
    """

    def __init__(self, devices=("mic-1",), tab_has_audio: bool = True):
        super().__init__(sample_rate=16000, channels=1)
        self.devices = list(devices)
        self.tab_has_audio = tab_has_audio
        self.tracks: List[MediaStreamTrack] = []
        self.sinks: List[FakeSink] = []
        self.requests: List[MediaConstraints] = []
        self.tokens = {}
        self.token_error: Optional[Exception] = None
        self.tab_error: Optional[Exception] = None
        self.mic_error: Optional[Exception] = None
        self.acquire_delay = 0.0

    async def get_media_stream_id(self, target_tab_id):
        if self.token_error:
            raise self.token_error
        token = f"token-{target_tab_id}-{len(self.tokens)}"
        self.tokens[token] = target_tab_id
        return token

    async def get_user_media(self, constraints):
        self.requests.append(constraints)
        if self.acquire_delay:
            await asyncio.sleep(self.acquire_delay)

        if constraints.media_source == "tab":
            if self.tab_error:
                raise self.tab_error
            tab_id = self.tokens.pop(constraints.media_source_id, None)
            if tab_id is None:
                raise PermissionError("Unknown tab capture token")
            tracks = []
            if self.tab_has_audio:
                tracks.append(self._new_track("audio", f"tab-{tab_id}"))
            if constraints.video:
                tracks.append(self._new_track("video", f"tab-{tab_id}-video"))
            return MediaStream(tracks)

        if self.mic_error:
            raise self.mic_error
        if constraints.device_id not in self.devices:
            raise LookupError(f"Requested device not found: {constraints.device_id}")
        return MediaStream([self._new_track("audio", f"mic-{constraints.device_id}")])

    def _new_track(self, kind, label):
        track = MediaStreamTrack(kind=kind, label=label)
        self.tracks.append(track)
        return track

    def track(self, label) -> MediaStreamTrack:
        for track in self.tracks:
            if track.label == label:
                return track
        raise KeyError(label)

    def open_speaker_output(self):
        sink = FakeSink()
        self.sinks.append(sink)
        return sink

    def enumerate_devices(self):
        return [AudioDevice(device_id=d, label=f"Microphone {d}") for d in self.devices]


class FakeClock:
    """Controllable wall clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_platform():
    return FakePlatform()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_store(temp_data_dir):
    return RecordingStore(temp_data_dir)


@pytest.fixture
def echoes_config(temp_data_dir):
    """Default configuration with short timers so sessions run quickly."""
    config = EchoesConfig()
    config.set('storage.data_directory', temp_data_dir)
    config.set('recorder.timeslice_ms', 50)
    config.set('recorder.tick_interval_seconds', 0.05)
    config.set('recorder.render_interval_seconds', 0.01)
    config.set('recorder.visualization.frame_interval_seconds', 0.01)
    return config


@pytest.fixture
def sample_frame():
    """A 20 ms frame of a 440 Hz tone as int16 samples."""
    t = np.arange(320) / 16000
    return (np.sin(2 * np.pi * 440 * t) * 16000).astype(np.int16)


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def sample_audio_file(temp_data_dir, sample_audio_chunk):
    """Create a sample WAV file of about 6.4 seconds."""
    file_path = Path(temp_data_dir) / "standup.wav"

    with wave.open(str(file_path), 'wb') as wf:
        wf.setnchannels(1)  # Mono
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(16000)  # 16kHz
        for _ in range(100):
            wf.writeframes(sample_audio_chunk)

    return str(file_path)


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        devices = [
            {'index': 0, 'name': 'Built-in Microphone', 'maxInputChannels': 1},
            {'index': 1, 'name': 'Built-in Output', 'maxInputChannels': 0},
            {'index': 2, 'name': 'Monitor of Built-in Output', 'maxInputChannels': 2},
        ]
        mock_pyaudio_instance.get_device_count.return_value = len(devices)
        mock_pyaudio_instance.get_device_info_by_index.side_effect = lambda i: devices[i]
        mock_pyaudio_instance.get_default_input_device_info.return_value = devices[0]
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream,
            'devices': devices,
        }


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000):
        """Generate int16 samples.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            wave_data = np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        return (wave_data * 32767).astype(np.int16)

    return generate_audio
