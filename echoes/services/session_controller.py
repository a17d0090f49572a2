"""Session controller that drives one recorder window."""

import logging
from typing import Any, Callable, Mapping, Optional, Union
from urllib.parse import parse_qs

from ..audio.platform import AbstractMediaPlatform
from ..config import EchoesConfig
from ..exceptions import ParameterError
from ..models.recording import Recording
from ..models.session import CaptureMode, SessionParameters, SessionStatus
from ..models.ui import RecorderView
from ..storage.recording_store import RecordingStore
from ..ui.formatting import format_duration
from .capture_session import CaptureSession
from .event_publisher import SessionEventPublisher

logger = logging.getLogger(__name__)

VIEW_RECORDINGS_ACTION = "view_recordings"

INVALID_PARAMETERS_MESSAGE = "Invalid parameters"


def parse_session_parameters(raw: Union[str, Mapping[str, Any]]) -> SessionParameters:
    """Build session parameters from a query string or a mapping.

    Accepts ``mode``, ``tabId`` (or ``tab_id``) and ``deviceId`` (or
    ``device_id``). A tab id is required whenever the mode records the tab,
    a device id for microphone-only recording. ``both`` without a device
    falls back to recording the tab.

    Raises:
        ParameterError: Missing or invalid mode, tab id or device id
    """
    if isinstance(raw, str):
        raw = {key: values[0] for key, values in parse_qs(raw.lstrip('?')).items()}

    try:
        mode = CaptureMode(raw.get('mode'))
    except ValueError:
        raise ParameterError(INVALID_PARAMETERS_MESSAGE)

    tab_value = raw.get('tabId', raw.get('tab_id'))
    tab_id = None
    if tab_value not in (None, '') or mode.includes_tab:
        try:
            tab_id = int(tab_value)
        except (TypeError, ValueError):
            raise ParameterError(INVALID_PARAMETERS_MESSAGE)
        if tab_id <= 0:
            raise ParameterError(INVALID_PARAMETERS_MESSAGE)

    device_id = raw.get('deviceId', raw.get('device_id')) or None
    if device_id is not None:
        device_id = str(device_id)
    # Without a device, "both" records the tab alone
    if mode == CaptureMode.MIC and not device_id:
        raise ParameterError(f"{INVALID_PARAMETERS_MESSAGE}: microphone device required")

    return SessionParameters(mode=mode, tab_id=tab_id, device_id=device_id)


class SessionController:
    """Launches a capture session from raw parameters and exposes what to display."""

    def __init__(self,
                 platform: AbstractMediaPlatform,
                 store: RecordingStore,
                 config: EchoesConfig,
                 navigator: Optional[Callable[[], Any]] = None,
                 publisher: Optional[SessionEventPublisher] = None):
        """Initialize session controller.

        Args:
            platform: Media platform to record from
            store: Recording store for finished recordings
            config: Application configuration
            navigator: Called by view_recordings; defaults to listing the store
            publisher: Publisher for session events
        """
        self.platform = platform
        self.store = store
        self.config = config
        self.navigator = navigator or store.list_recordings
        self.publisher = publisher or SessionEventPublisher()
        self.session: Optional[CaptureSession] = None
        self.parameter_error: Optional[str] = None
        self.show_levels = config.get('recorder.visualization.enabled', True)

    async def launch(self, raw: Union[str, Mapping[str, Any]]) -> Optional[CaptureSession]:
        """Parse parameters and start recording.

        Returns:
            The started session, or None when the parameters were rejected
        """
        if self.session is not None or self.parameter_error is not None:
            raise RuntimeError("This recorder has already been launched")

        try:
            params = parse_session_parameters(raw)
        except ParameterError as e:
            logger.error(f"Rejected session parameters {raw!r}: {e}")
            self.parameter_error = str(e)
            return None

        self.session = CaptureSession(params, self.platform, self.store, self.config,
                                      on_event=self.publisher.publish_session_event)
        await self.session.start()
        return self.session

    async def stop(self) -> Optional[Recording]:
        """Stop the running session (user initiated)."""
        if self.session is None:
            return None
        return await self.session.stop()

    @property
    def view(self) -> RecorderView:
        """Current display state."""
        if self.session is None:
            if self.parameter_error is not None:
                return RecorderView(state=SessionStatus.STOPPED, error=self.parameter_error)
            return RecorderView(state=SessionStatus.STARTING)

        session = self.session
        view = RecorderView(
            state=session.status,
            elapsed_label=format_duration(session.elapsed_seconds),
            levels=list(session.levels) if self.show_levels else [],
            error=session.error,
        )
        if session.status == SessionStatus.STOPPED and session.error is None:
            view.saved = session.recording is not None
            view.actions = [VIEW_RECORDINGS_ACTION]
        return view

    def view_recordings(self) -> Any:
        """Follow-on action after a successful stop."""
        if VIEW_RECORDINGS_ACTION not in self.view.actions:
            raise RuntimeError("Recordings can be opened once the recording has stopped")
        return self.navigator()
