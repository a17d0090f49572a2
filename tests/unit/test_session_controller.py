"""Unit tests for the session controller and parameter parsing."""

import pytest
import asyncio
from pubsub import pub

from echoes.exceptions import ParameterError
from echoes.models.session import CaptureMode, SessionStatus
from echoes.services.event_publisher import SessionEventPublisher
from echoes.services.session_controller import (
    VIEW_RECORDINGS_ACTION, SessionController, parse_session_parameters,
)


@pytest.mark.unit
class TestParseSessionParameters:
    """Test cases for parse_session_parameters."""

    def test_query_string(self):
        params = parse_session_parameters("?mode=both&tabId=42&deviceId=mic-1")

        assert params.mode == CaptureMode.BOTH
        assert params.tab_id == 42
        assert params.device_id == "mic-1"

    def test_mapping_with_snake_case_keys(self):
        params = parse_session_parameters({'mode': 'tab', 'tab_id': 3})

        assert params.mode == CaptureMode.TAB
        assert params.tab_id == 3
        assert params.device_id is None

    def test_microphone_only_needs_no_tab(self):
        params = parse_session_parameters("mode=mic&deviceId=3")

        assert params.mode == CaptureMode.MIC
        assert params.tab_id is None
        assert params.wants_mic

    def test_empty_device_is_none(self):
        params = parse_session_parameters("mode=tab&tabId=3&deviceId=")
        assert params.device_id is None
        assert not params.wants_mic

    @pytest.mark.parametrize("raw", [
        "mode=both&tabId=3",
        "mode=both&tabId=3&deviceId=",
        {'mode': 'both', 'tabId': 3, 'deviceId': None},
    ])
    def test_both_without_device_records_tab_only(self, raw):
        params = parse_session_parameters(raw)

        assert params.mode == CaptureMode.BOTH
        assert params.tab_id == 3
        assert params.device_id is None
        assert not params.wants_mic

    @pytest.mark.parametrize("raw", [
        "",
        "mode=tab",
        "tabId=3",
        "mode=video&tabId=3",
        "mode=tab&tabId=abc",
        "mode=tab&tabId=0",
        "mode=mic&tabId=3",
        "mode=mic&deviceId=",
        "mode=mic&tabId=-1&deviceId=3",
        "mode=both&deviceId=3",
        {'mode': None, 'tabId': 3},
    ])
    def test_invalid(self, raw):
        with pytest.raises(ParameterError):
            parse_session_parameters(raw)


class EventRecorder:
    """Pubsub listener collecting session events."""

    def __init__(self, topic):
        self.topic = topic
        self.events = []
        pub.subscribe(self.on_event, topic)

    def on_event(self, event):
        self.events.append(event)

    def close(self):
        pub.unsubscribe(self.on_event, self.topic)


@pytest.mark.unit
class TestSessionController:
    """Test cases for SessionController."""

    def test_initial_view(self, fake_platform, recording_store, echoes_config):
        controller = SessionController(fake_platform, recording_store, echoes_config)
        view = controller.view

        assert view.state == SessionStatus.STARTING
        assert view.actions == []
        assert view.error is None

    def test_invalid_parameters(self, fake_platform, recording_store, echoes_config):
        controller = SessionController(fake_platform, recording_store, echoes_config)

        session = asyncio.run(controller.launch("mode=tab"))

        assert session is None
        view = controller.view
        assert view.state == SessionStatus.STOPPED
        assert view.error == "Invalid parameters"
        assert view.actions == []
        assert fake_platform.requests == []

    def test_record_and_view_recordings(self, fake_platform, recording_store, echoes_config,
                                        sample_frame):
        controller = SessionController(fake_platform, recording_store, echoes_config)

        async def run():
            await controller.launch({'mode': 'tab', 'tabId': 5})
            recording_view = controller.view
            for _ in range(3):
                fake_platform.track("tab-5").publish(sample_frame)
                await asyncio.sleep(0.02)
            recording = await controller.stop()
            return recording_view, recording

        recording_view, recording = asyncio.run(run())

        assert recording_view.state == SessionStatus.RECORDING
        assert recording_view.elapsed_label == "0:00"
        assert len(recording_view.levels) == 5
        assert recording_view.actions == []

        view = controller.view
        assert view.state == SessionStatus.STOPPED
        assert view.saved
        assert view.actions == [VIEW_RECORDINGS_ACTION]
        assert [r.id for r in controller.view_recordings()] == [recording.id]

    def test_both_without_device_launches_tab_only(self, fake_platform, recording_store,
                                                   echoes_config):
        controller = SessionController(fake_platform, recording_store, echoes_config)

        async def run():
            session = await controller.launch("mode=both&tabId=5")
            view = controller.view
            await controller.stop()
            return session, view

        session, view = asyncio.run(run())

        assert view.state == SessionStatus.RECORDING
        assert view.error is None
        assert sorted(session.streams) == ["tab"]
        assert all(c.device_id is None for c in fake_platform.requests)

    def test_view_recordings_unavailable_while_recording(self, fake_platform, recording_store,
                                                         echoes_config):
        controller = SessionController(fake_platform, recording_store, echoes_config)

        async def run():
            await controller.launch("mode=tab&tabId=5")
            try:
                with pytest.raises(RuntimeError):
                    controller.view_recordings()
            finally:
                await controller.stop()

        asyncio.run(run())

    def test_acquisition_error_is_shown(self, fake_platform, recording_store, echoes_config):
        fake_platform.tab_error = PermissionError("Permission denied")
        navigated = []
        controller = SessionController(fake_platform, recording_store, echoes_config,
                                       navigator=lambda: navigated.append(True))

        asyncio.run(controller.launch("mode=tab&tabId=5"))

        view = controller.view
        assert view.state == SessionStatus.STOPPED
        assert view.error == "Permission denied"
        assert view.actions == []
        with pytest.raises(RuntimeError):
            controller.view_recordings()
        assert navigated == []

    def test_empty_recording_offers_navigation(self, fake_platform, recording_store,
                                               echoes_config):
        navigated = []
        controller = SessionController(fake_platform, recording_store, echoes_config,
                                       navigator=lambda: navigated.append(True))

        async def run():
            await controller.launch("mode=tab&tabId=5")
            return await controller.stop()

        assert asyncio.run(run()) is None
        view = controller.view
        assert not view.saved
        assert view.error is None
        controller.view_recordings()
        assert navigated == [True]

    def test_launch_twice(self, fake_platform, recording_store, echoes_config):
        controller = SessionController(fake_platform, recording_store, echoes_config)

        async def run():
            await controller.launch("mode=tab&tabId=5")
            try:
                with pytest.raises(RuntimeError):
                    await controller.launch("mode=tab&tabId=5")
            finally:
                await controller.stop()

        asyncio.run(run())

    def test_levels_hidden_when_visualization_disabled(self, fake_platform, recording_store,
                                                       echoes_config):
        echoes_config.set('recorder.visualization.enabled', False)
        controller = SessionController(fake_platform, recording_store, echoes_config)

        async def run():
            await controller.launch("mode=tab&tabId=5")
            view = controller.view
            await controller.stop()
            return view

        assert asyncio.run(run()).levels == []

    def test_events_published(self, fake_platform, recording_store, echoes_config):
        recorder = EventRecorder("test_session_events")
        controller = SessionController(fake_platform, recording_store, echoes_config,
                                       publisher=SessionEventPublisher("test_session_events"))

        async def run():
            session = await controller.launch("mode=tab&tabId=5")
            await controller.stop()
            return session

        try:
            session = asyncio.run(run())
        finally:
            recorder.close()

        statuses = [e.metadata["status"] for e in recorder.events if e.event_type == "status"]
        assert statuses == ["recording", "stopped"]
        assert all(e.session_id == session.session_id for e in recorder.events)
