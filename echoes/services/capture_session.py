"""Capture session: the state machine behind a single recording."""

import time
import uuid
import asyncio
import logging
from typing import Callable, Dict, List, Optional

from ..audio.acquirer import StreamAcquirer
from ..audio.analyser import LevelAnalyzer
from ..audio.encoder import ChunkEncoder, assemble_artifact
from ..audio.media import MediaStream, MediaStreamTrack, release_streams
from ..audio.mixer import MixingGraph
from ..audio.platform import AbstractMediaPlatform
from ..config import EchoesConfig
from ..exceptions import AcquisitionError
from ..models.events import SessionEvent
from ..models.recording import Recording
from ..models.session import SessionParameters, SessionStatus
from ..storage.recording_store import RecordingStore

logger = logging.getLogger(__name__)

_STATUS_ORDER = {
    SessionStatus.STARTING: 0,
    SessionStatus.RECORDING: 1,
    SessionStatus.STOPPED: 2,
}

SAVE_FAILED_MESSAGE = "Failed to save recording"


class CaptureSession:
    """Records the sources described by one set of session parameters.

    The session moves starting -> recording -> stopped, or straight from
    starting to stopped when acquisition fails. It owns its streams, its
    mixing graph and its chunks; the finished artifact is handed to the
    recording store exactly once.
    """

    def __init__(self,
                 params: SessionParameters,
                 platform: AbstractMediaPlatform,
                 store: RecordingStore,
                 config: EchoesConfig,
                 on_event: Optional[Callable[[SessionEvent], None]] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize capture session.

        Args:
            params: Validated session parameters
            platform: Media platform to acquire streams from
            store: Recording store receiving the finished artifact
            config: Application configuration
            on_event: Optional callback for status, tick and level events
            clock: Wall-clock source in seconds
        """
        self.session_id = uuid.uuid4().hex[:12]
        self.params = params
        self.platform = platform
        self.store = store
        self.on_event = on_event
        self.clock = clock
        self.acquirer = StreamAcquirer(platform)

        self.timeslice_ms = config.get('recorder.timeslice_ms', 1000)
        self.finalize_timeout = config.get('recorder.finalize_timeout_seconds', 0.1)
        self.tick_interval = config.get('recorder.tick_interval_seconds', 1.0)
        self.render_interval = config.get('recorder.render_interval_seconds', 0.02)
        self.visualization = config.get('recorder.visualization', {}) or {}
        self.band_count = self.visualization.get('band_count', 5)

        # Session state
        self.status = SessionStatus.STARTING
        self.started_at: Optional[float] = None
        self.elapsed_seconds = 0
        self.chunks: List[bytes] = []
        self.levels: List[float] = [0.0] * self.band_count
        self.error: Optional[str] = None
        self.recording: Optional[Recording] = None

        # Owned resources
        self.streams: Dict[str, MediaStream] = {}
        self.graph: Optional[MixingGraph] = None
        self.encoder: Optional[ChunkEncoder] = None
        self.analyzer: Optional[LevelAnalyzer] = None
        self._ticker: Optional[asyncio.Task] = None

        self._started = False
        self._stop_requested = False
        self._stopped: Optional[asyncio.Event] = None
        self._stop_task: Optional[asyncio.Task] = None

    # -- state -----------------------------------------------------------

    def _publish(self, event_type: str, **metadata) -> None:
        if self.on_event:
            self.on_event(SessionEvent(session_id=self.session_id,
                                       event_type=event_type,
                                       metadata=metadata))

    @property
    def is_stopped(self) -> bool:
        return self.status == SessionStatus.STOPPED

    def _set_status(self, status: SessionStatus) -> None:
        if _STATUS_ORDER[status] <= _STATUS_ORDER[self.status]:
            raise RuntimeError(f"Invalid transition {self.status.value} -> {status.value}")
        logger.info(f"Session {self.session_id}: {self.status.value} -> {status.value}")
        self.status = status
        if status == SessionStatus.STOPPED and self._stopped is not None:
            self._stopped.set()
        self._publish("status", status=status.value, error=self.error)

    def _fail(self, message: str) -> None:
        self.error = message
        self._stop_requested = True
        self._set_status(SessionStatus.STOPPED)

    def _elapsed_now(self) -> int:
        if self.started_at is None:
            return 0
        return int(max(0.0, self.clock() - self.started_at))

    # -- start -----------------------------------------------------------

    async def start(self) -> None:
        """Acquire sources, build the graph and start encoding.

        Failures are recorded in ``error`` and leave the session stopped; they
        are never raised to the caller.
        """
        if self._started:
            raise RuntimeError("Session already started")
        if self.status == SessionStatus.STOPPED:
            logger.info(f"Session {self.session_id} was stopped before starting, not acquiring sources")
            return
        self._started = True
        self._stopped = asyncio.Event()
        logger.info(f"Session {self.session_id} starting: mode={self.params.mode.value}, "
                    f"tab={self.params.tab_id}, device={self.params.device_id}")

        try:
            streams = await self.acquirer.acquire(self.params)
        except AcquisitionError as e:
            logger.error(f"Session {self.session_id} acquisition failed: {e}")
            self._fail(str(e))
            return

        self.streams = streams
        if self._stop_requested:
            logger.info(f"Session {self.session_id} stopped while starting, releasing sources")
            release_streams(streams.values())
            self._set_status(SessionStatus.STOPPED)
            return

        try:
            self.graph = MixingGraph.build(self.platform, streams, self.params.mode,
                                           render_interval=self.render_interval)
            self.encoder = ChunkEncoder(self.graph.output_stream, self._on_chunk)
            self.graph.start()
            self.encoder.start(self.timeslice_ms)
        except Exception as e:
            logger.error(f"Session {self.session_id} failed to start encoding: {e}", exc_info=True)
            self._release_resources()
            self._fail(f"Failed to start recording: {e}")
            return

        for stream in streams.values():
            for track in stream.get_audio_tracks():
                track.add_ended_listener(self._on_track_ended)

        self.started_at = self.clock()

        if self.visualization.get('enabled', True):
            self.analyzer = LevelAnalyzer(
                self.graph.analysis_track,
                on_levels=self._on_levels,
                band_count=self.band_count,
                frame_interval=self.visualization.get('frame_interval_seconds', 0.016),
                fft_size=self.visualization.get('fft_size', 64),
                smoothing_time_constant=self.visualization.get('smoothing_time_constant', 0.8),
            )
            self.analyzer.start()

        self._ticker = asyncio.get_running_loop().create_task(self._tick_loop())
        self._set_status(SessionStatus.RECORDING)

    def _on_chunk(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        logger.debug(f"Session {self.session_id}: chunk {len(self.chunks)} ({len(chunk)} bytes)")

    def _on_levels(self, levels: List[float]) -> None:
        if self.status != SessionStatus.RECORDING:
            return
        self.levels = levels
        self._publish("levels", levels=levels)

    def _on_track_ended(self, track: MediaStreamTrack) -> None:
        if self.status != SessionStatus.RECORDING or self._stop_requested:
            return
        logger.warning(f"Session {self.session_id}: source {track.label or track.id} ended, stopping")
        self._stop_task = asyncio.get_running_loop().create_task(self.stop())

    # -- ticking ---------------------------------------------------------

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.tick()

    def tick(self) -> int:
        """Recompute the elapsed time from the start timestamp."""
        if self.status != SessionStatus.RECORDING:
            return self.elapsed_seconds
        self.elapsed_seconds = self._elapsed_now()
        self._publish("tick", elapsed_seconds=self.elapsed_seconds)
        return self.elapsed_seconds

    def _cancel_timers(self) -> None:
        if self.analyzer is not None:
            self.analyzer.cancel()
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    # -- stop ------------------------------------------------------------

    def _release_resources(self) -> Optional[asyncio.Event]:
        finished = self.encoder.stop() if self.encoder is not None else None
        release_streams(self.streams.values())
        if self.graph is not None:
            self.graph.close()
        self._cancel_timers()
        return finished

    async def stop(self) -> Optional[Recording]:
        """Stop recording and persist the result.

        Only the first call does any work; later calls wait for it and return
        the same result.

        Returns:
            The stored recording, or None if nothing was saved
        """
        if not self._started:
            if self.status != SessionStatus.STOPPED:
                self._stop_requested = True
                self._set_status(SessionStatus.STOPPED)
            return None

        if self._stop_requested:
            await self._stopped.wait()
            return self.recording

        self._stop_requested = True
        if self.status == SessionStatus.STARTING:
            # start() releases the sources once acquisition resolves
            await self._stopped.wait()
            return self.recording

        logger.info(f"Session {self.session_id} stopping")
        duration = self._elapsed_now()
        self.elapsed_seconds = duration

        # Finalize, stop tracks, close the graph, cancel timers: all before awaiting
        finished = self._release_resources()

        if finished is not None:
            try:
                await asyncio.wait_for(finished.wait(), timeout=self.finalize_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Encoder did not finalize within {self.finalize_timeout}s, "
                               f"assembling {len(self.chunks)} chunks received so far")

        artifact = assemble_artifact(self.chunks, self.platform.sample_rate, self.platform.channels)

        if artifact:
            try:
                self.recording = await asyncio.to_thread(self.store.create_recording, artifact, duration)
                logger.info(f"Session {self.session_id} saved as {self.recording.id} "
                            f"({len(artifact)} bytes, {duration}s)")
            except Exception as e:
                logger.error(f"Session {self.session_id} failed to save recording: {e}", exc_info=True)
                self.error = SAVE_FAILED_MESSAGE
        else:
            logger.info(f"Session {self.session_id} captured no audio, nothing to save")

        self._set_status(SessionStatus.STOPPED)
        return self.recording
