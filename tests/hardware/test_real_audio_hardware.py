"""Real hardware tests for the recorder.

These tests require actual audio hardware (a microphone, and for the tab test
a loopback input such as "Monitor of ..." or BlackHole) and verify the saved
recording.

Run with: pytest tests/hardware/ -v -s -m hardware
"""

import io
import wave
import pytest
import asyncio

from echoes.audio.pyaudio_platform import PyAudioPlatform
from echoes.config import EchoesConfig
from echoes.models.session import SessionStatus
from echoes.services.session_controller import SessionController
from echoes.storage.recording_store import RecordingStore


def record_for(platform, store, raw, seconds):
    config = EchoesConfig()
    controller = SessionController(platform, store, config)

    async def run():
        await controller.launch(raw)
        await asyncio.sleep(seconds)
        return await controller.stop()

    return controller, asyncio.run(run())


@pytest.mark.hardware
class TestRealAudioHardware:
    """Tests that require real audio hardware to run."""

    def test_real_microphone_recording_5s(self, temp_data_dir):
        """Record 5 seconds from the first input device and check the WAV file."""
        print("\n" + "=" * 60)
        print("HARDWARE TEST: 5-second microphone recording")
        print("=" * 60)

        platform = PyAudioPlatform(sample_rate=16000, channels=1, frames_per_buffer=1024)
        store = RecordingStore(temp_data_dir)
        try:
            devices = platform.enumerate_devices()
            if not devices:
                pytest.skip("No audio input device available")
            print(f"Using device {devices[0].device_id}: {devices[0].label}")

            controller, recording = record_for(
                platform, store, {'mode': 'mic', 'tabId': 1, 'deviceId': devices[0].device_id}, 5.0)
        finally:
            platform.terminate()

        view = controller.view
        print(f"Final state: {view.state.value}, error: {view.error}")
        assert view.state == SessionStatus.STOPPED
        assert view.error is None, f"Recording failed: {view.error}"
        assert recording is not None, "Nothing was recorded"

        with wave.open(io.BytesIO(store.read_audio(recording.id)), 'rb') as wf:
            assert wf.getframerate() == 16000
            assert wf.getnchannels() == 1
            duration_from_file = wf.getnframes() / wf.getframerate()

        print(f"Saved {recording.size:,} bytes, {duration_from_file:.2f}s of audio")
        assert duration_from_file >= 4.0, f"Audio duration too short: {duration_from_file:.2f}s"
        assert recording.duration in (4, 5)

    def test_real_tab_loopback_recording(self, temp_data_dir):
        """Record 3 seconds from the configured loopback device."""
        config = EchoesConfig()
        loopback = config.get('audio.tab_loopback_device') or "Monitor of"
        platform = PyAudioPlatform(sample_rate=16000, channels=1, tab_loopback_device=loopback)
        store = RecordingStore(temp_data_dir)
        try:
            if not any(loopback.lower() in d.label.lower() for d in platform.enumerate_devices()):
                pytest.skip(f"No loopback device matching '{loopback}'")

            controller, recording = record_for(platform, store, "mode=tab&tabId=1", 3.0)
        finally:
            platform.terminate()

        assert controller.view.error is None, f"Recording failed: {controller.view.error}"
        assert recording is not None
        print(f"Loopback recording saved: {recording.id} ({recording.size:,} bytes)")


if __name__ == "__main__":
    print("Hardware tests for Echoes")
    print("Run with: pytest tests/hardware/ -v -s -m hardware")
