"""Real-time mixing graph for combining tab and microphone audio.

A ``ProcessingContext`` owns a small node graph: source nodes wrap live
tracks, rendering nodes (the mixing point and the speaker output) sum whatever
their inputs delivered since the last render. Rendering runs on a clock, so an
input that falls behind is rendered as silence instead of stalling the mix.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, List, Mapping, Optional

import numpy as np

from ..models.session import CaptureMode
from .media import MediaStream, MediaStreamTrack
from .platform import AbstractAudioSink, AbstractMediaPlatform

logger = logging.getLogger(__name__)


def mix_frames(blocks: List[np.ndarray]) -> np.ndarray:
    """Sum equally sized int16 blocks, clipping to the int16 range."""
    total = np.zeros(len(blocks[0]), dtype=np.int32)
    for block in blocks:
        total += block.astype(np.int32)
    return np.clip(total, -32768, 32767).astype(np.int16)


class _InputPort:
    """Buffers frames arriving from one source for one rendering node."""

    def __init__(self, track: MediaStreamTrack, max_samples: int):
        self.track = track
        self.max_samples = max_samples
        self.pending: Deque[np.ndarray] = deque()
        self.buffered = 0
        track.subscribe(self.on_frame)

    def on_frame(self, frame: np.ndarray) -> None:
        self.pending.append(frame)
        self.buffered += len(frame)
        overflow = self.buffered - self.max_samples
        if overflow > 0:
            self._take(overflow)
            logger.debug(f"Dropped {overflow} late samples from {self.track.label or self.track.id}")

    def _take(self, count: int, out: Optional[np.ndarray] = None) -> int:
        taken = 0
        while taken < count and self.pending:
            head = self.pending[0]
            n = min(len(head), count - taken)
            if out is not None:
                out[taken:taken + n] = head[:n]
            if n == len(head):
                self.pending.popleft()
            else:
                self.pending[0] = head[n:]
            taken += n
        self.buffered -= taken
        return taken

    def read(self, frames: int) -> np.ndarray:
        """Return exactly ``frames`` samples, zero-padded when the source is behind."""
        out = np.zeros(frames, dtype=np.int16)
        self._take(frames, out)
        return out

    def detach(self) -> None:
        self.track.unsubscribe(self.on_frame)
        self.pending.clear()
        self.buffered = 0


class AudioNode:
    """Base class of every node in a processing context."""

    def __init__(self, context: "ProcessingContext"):
        self.context = context


class MediaStreamSourceNode(AudioNode):
    """Exposes the first audio track of a stream to the graph."""

    def __init__(self, context: "ProcessingContext", stream: MediaStream):
        super().__init__(context)
        tracks = stream.get_audio_tracks()
        if not tracks:
            raise ValueError("Stream has no audio track")
        self.stream = stream
        self.track = tracks[0]

    def connect(self, destination: "RenderingNode") -> "RenderingNode":
        destination.add_input(self)
        return destination

    def disconnect(self, destination: "RenderingNode") -> None:
        destination.remove_input(self)


class RenderingNode(AudioNode):
    """A node that sums its inputs once per render."""

    def __init__(self, context: "ProcessingContext"):
        super().__init__(context)
        self.ports: Dict[str, _InputPort] = {}

    def add_input(self, source: MediaStreamSourceNode) -> None:
        if source.track.id in self.ports:
            return
        self.ports[source.track.id] = _InputPort(source.track, self.context.max_buffered_samples)

    def remove_input(self, source: MediaStreamSourceNode) -> None:
        port = self.ports.pop(source.track.id, None)
        if port:
            port.detach()

    def process(self, frames: int) -> None:
        if not self.ports or frames <= 0:
            return
        self._output(mix_frames([port.read(frames) for port in self.ports.values()]))

    def _output(self, block: np.ndarray) -> None:
        raise NotImplementedError

    def release(self) -> None:
        for port in self.ports.values():
            port.detach()
        self.ports.clear()


class MediaStreamDestinationNode(RenderingNode):
    """Mixing point whose output is a new media stream."""

    def __init__(self, context: "ProcessingContext"):
        super().__init__(context)
        self.track = MediaStreamTrack(kind="audio", label="mix")
        self.stream = MediaStream([self.track])

    def _output(self, block: np.ndarray) -> None:
        self.track.publish(block)

    def release(self) -> None:
        super().release()
        self.track.stop()


class SpeakerDestinationNode(RenderingNode):
    """Local speaker output. The device is opened when the first input connects."""

    def __init__(self, context: "ProcessingContext", platform: AbstractMediaPlatform):
        super().__init__(context)
        self.platform = platform
        self.sink: Optional[AbstractAudioSink] = None

    def add_input(self, source: MediaStreamSourceNode) -> None:
        super().add_input(source)
        if self.sink is None:
            self.sink = self.platform.open_speaker_output()

    def _output(self, block: np.ndarray) -> None:
        self.sink.write(block)

    def release(self) -> None:
        super().release()
        if self.sink is not None:
            self.sink.close()
            self.sink = None


class ProcessingContext:
    """Audio processing context exclusively owned by one capture session."""

    def __init__(self, platform: AbstractMediaPlatform,
                 render_interval: float = 0.02, max_latency: float = 0.5):
        """Initialize processing context.

        Args:
            platform: Platform providing the speaker output
            render_interval: Seconds between renders of the pump
            max_latency: Seconds of audio an input may buffer before old
                samples are dropped
        """
        self.sample_rate = platform.sample_rate
        self.render_interval = render_interval
        self.max_buffered_samples = int(self.sample_rate * max_latency)
        self.state = "running"
        self.rendered_samples = 0
        self.nodes: List[RenderingNode] = []
        self.destination = SpeakerDestinationNode(self, platform)
        self.nodes.append(self.destination)
        self._task: Optional[asyncio.Task] = None

    def create_media_stream_source(self, stream: MediaStream) -> MediaStreamSourceNode:
        return MediaStreamSourceNode(self, stream)

    def create_media_stream_destination(self) -> MediaStreamDestinationNode:
        node = MediaStreamDestinationNode(self)
        # Mixing points render before the speakers
        self.nodes.insert(0, node)
        return node

    def start(self) -> None:
        """Start the render pump on the running event loop."""
        if self._task is not None or self.state == "closed":
            return
        self._task = asyncio.get_running_loop().create_task(self._pump())

    async def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        base = self.rendered_samples
        while True:
            await asyncio.sleep(self.render_interval)
            due = base + int((loop.time() - started) * self.sample_rate) - self.rendered_samples
            if due <= 0:
                continue
            try:
                self.render(due)
            except Exception as e:
                logger.error(f"Render failed: {e}", exc_info=True)

    def render(self, frames: int) -> None:
        """Render ``frames`` samples through every node."""
        if self.state == "closed":
            return
        for node in self.nodes:
            node.process(frames)
        self.rendered_samples += frames

    def close(self) -> None:
        """Stop rendering and release every node. Safe to call repeatedly."""
        if self.state == "closed":
            return
        self.state = "closed"
        if self._task is not None:
            self._task.cancel()
            self._task = None
        for node in self.nodes:
            try:
                node.release()
            except Exception as e:
                logger.warning(f"Error releasing {type(node).__name__}: {e}")
        logger.debug(f"Processing context closed after {self.rendered_samples} samples")


class MixingGraph:
    """The audio graph a session records from.

    ``output_stream`` feeds the encoder, ``analysis_track`` feeds the level
    analyzer. The context is only created when tab audio has to be monitored
    or mixed.
    """

    def __init__(self, output_stream: MediaStream, analysis_track: MediaStreamTrack,
                 context: Optional[ProcessingContext] = None):
        self.output_stream = output_stream
        self.analysis_track = analysis_track
        self.context = context

    @classmethod
    def build(cls, platform: AbstractMediaPlatform, streams: Mapping[str, MediaStream],
              mode: CaptureMode, render_interval: float = 0.02) -> "MixingGraph":
        """Wire the graph for the acquired sources.

        Args:
            platform: Platform providing the speaker output
            streams: Acquired streams keyed by "tab" and "mic"
            mode: Requested capture mode
            render_interval: Seconds between renders of the mixing pump
        """
        tab = streams.get("tab")
        mic = streams.get("mic")

        if tab is None and mic is None:
            raise ValueError("No source streams to record")

        if tab is None:
            logger.info("Recording microphone only, no monitoring")
            return cls(mic, mic.get_audio_tracks()[0])

        if mode == CaptureMode.BOTH and mic is None:
            logger.info("No microphone stream, mixing graph runs tab only")

        context = ProcessingContext(platform, render_interval=render_interval)
        try:
            tab_source = context.create_media_stream_source(tab)
            tab_source.connect(context.destination)

            if mic is None:
                return cls(tab, tab_source.track, context)

            mix = context.create_media_stream_destination()
            tab_source.connect(mix)
            context.create_media_stream_source(mic).connect(mix)
            logger.info("Mixing tab and microphone, monitoring tab only")
            return cls(mix.stream, mix.track, context)
        except Exception:
            context.close()
            raise

    def start(self) -> None:
        if self.context is not None:
            self.context.start()

    def close(self) -> None:
        if self.context is not None:
            self.context.close()
