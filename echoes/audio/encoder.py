"""Chunked encoder that turns a live stream into timed audio chunks."""

import io
import wave
import asyncio
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from .media import MediaStream

logger = logging.getLogger(__name__)


class ChunkEncoder:
    """Emits the audio of a stream as one chunk per timeslice.

    Chunks are little-endian 16-bit PCM, delivered to ``on_data`` in capture
    order. Empty chunks are never delivered.
    """

    def __init__(self, stream: MediaStream, on_data: Callable[[bytes], None]):
        tracks = stream.get_audio_tracks()
        if not tracks:
            raise ValueError("Stream has no audio track")
        self.track = tracks[0]
        self.on_data = on_data
        self.state = "inactive"
        self.timeslice_ms: Optional[int] = None
        self.buffer = bytearray()
        self.total_chunks = 0
        self.finished = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def on_frame(self, frame: np.ndarray) -> None:
        if self.state == "recording":
            self.buffer.extend(frame.astype('<i2').tobytes())

    def start(self, timeslice_ms: int = 1000) -> None:
        """Start encoding, flushing a chunk every ``timeslice_ms``."""
        if self.state != "inactive":
            raise RuntimeError(f"Encoder cannot start from state '{self.state}'")
        self.state = "recording"
        self.timeslice_ms = timeslice_ms
        self.track.subscribe(self.on_frame)
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Encoder started with {timeslice_ms}ms timeslice")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.timeslice_ms / 1000.0)
            self._flush()

    def _flush(self) -> None:
        if not self.buffer:
            return
        chunk = bytes(self.buffer)
        self.buffer.clear()
        self.total_chunks += 1
        self.on_data(chunk)

    def stop(self) -> asyncio.Event:
        """Request finalization.

        The last chunk is delivered on a later loop iteration, after which the
        returned event is set.
        """
        if self.state != "recording":
            if self.state == "inactive":
                self.finished.set()
            return self.finished

        self.state = "inactive"
        self.track.unsubscribe(self.on_frame)
        if self._task is not None:
            self._task.cancel()
            self._task = None
        asyncio.get_running_loop().call_soon(self._finalize)
        return self.finished

    def _finalize(self) -> None:
        try:
            self._flush()
        finally:
            self.finished.set()
            logger.info(f"Encoder finalized after {self.total_chunks} chunks")


def assemble_artifact(chunks: Sequence[bytes], sample_rate: int = 16000,
                      channels: int = 1) -> bytes:
    """Concatenate PCM chunks into one WAV file.

    Returns:
        WAV bytes, or ``b""`` when the chunks carry no audio
    """
    payload_size = sum(len(chunk) for chunk in chunks)
    if payload_size == 0:
        return b""

    output = io.BytesIO()
    with wave.open(output, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        for chunk in chunks:
            wf.writeframes(chunk)
    return output.getvalue()
