"""Acquisition of the live audio sources for a session."""

import asyncio
import logging
from typing import Dict

from ..exceptions import AcquisitionError
from ..models.session import SessionParameters
from .media import MediaConstraints, MediaStream, release_streams
from .platform import AbstractMediaPlatform

logger = logging.getLogger(__name__)


class StreamAcquirer:
    """Opens the tab and/or microphone streams requested by session parameters."""

    def __init__(self, platform: AbstractMediaPlatform):
        self.platform = platform

    async def acquire(self, params: SessionParameters) -> Dict[str, MediaStream]:
        """Acquire every source the parameters ask for.

        Args:
            params: Session parameters

        Returns:
            Mapping of source name ("tab", "mic") to its live stream

        Raises:
            AcquisitionError: Any source failed; nothing is left running
        """
        streams: Dict[str, MediaStream] = {}

        if params.mode.includes_mic and not params.device_id:
            logger.warning(f"No microphone device for mode '{params.mode.value}', recording tab only")

        try:
            if params.mode.includes_tab:
                streams["tab"] = await self._acquire_tab(params.tab_id)
            if params.wants_mic:
                streams["mic"] = await self._acquire_mic(params.device_id)
        except asyncio.CancelledError:
            release_streams(streams.values())
            raise
        except Exception as e:
            logger.error(f"Acquisition failed after opening {sorted(streams)}: {e}")
            release_streams(streams.values())
            if isinstance(e, AcquisitionError):
                raise
            raise AcquisitionError(str(e) or type(e).__name__) from e

        logger.info(f"Acquired sources: {sorted(streams)}")
        return streams

    async def _acquire_tab(self, tab_id: int) -> MediaStream:
        stream_id = await self.platform.get_media_stream_id(tab_id)

        # Tab capture is only authorized together with video
        stream = await self.platform.get_user_media(MediaConstraints(
            audio=True,
            video=True,
            media_source="tab",
            media_source_id=stream_id,
        ))

        for track in stream.get_video_tracks():
            track.stop()

        if not stream.get_audio_tracks():
            stream.stop()
            raise AcquisitionError(f"Tab {tab_id} has no audio track")
        return stream

    async def _acquire_mic(self, device_id: str) -> MediaStream:
        stream = await self.platform.get_user_media(MediaConstraints(
            audio=True,
            device_id=device_id,
        ))
        if not stream.get_audio_tracks():
            stream.stop()
            raise AcquisitionError(f"Microphone {device_id} has no audio track")
        return stream
