"""Live audio level analysis for the recording visualization."""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from .media import MediaStreamTrack

logger = logging.getLogger(__name__)

# Byte magnitude treated as full scale when normalizing band averages.
# Speech rarely drives the upper bins past this.
LEVEL_CEILING = 180.0

DEFAULT_BAND_COUNT = 5


def compute_levels(snapshot: Sequence[float], band_count: int = DEFAULT_BAND_COUNT,
                   ceiling: float = LEVEL_CEILING) -> List[float]:
    """Reduce a frequency snapshot to ``band_count`` normalized levels.

    The snapshot is split into contiguous equal-width bands (trailing bins
    that do not fill a band are ignored); each band average is divided by
    ``ceiling`` and clamped to [0, 1].

    Args:
        snapshot: Byte-scaled magnitudes (0-255), lowest frequency first
        band_count: Number of levels to return
        ceiling: Magnitude that maps to a level of 1.0

    Returns:
        List of exactly ``band_count`` floats in [0, 1]
    """
    values = np.asarray(snapshot, dtype=np.float64)
    band_width = len(values) // band_count
    if band_width == 0:
        return [0.0] * band_count

    bands = values[:band_width * band_count].reshape(band_count, band_width)
    levels = np.clip(bands.mean(axis=1) / ceiling, 0.0, 1.0)
    return [float(level) for level in levels]


class FrequencyAnalyser:
    """Frequency-domain snapshot of the most recent samples on a track.

    Mirrors a browser analyser node: Blackman window, FFT, exponential
    smoothing between snapshots, decibel scaling into bytes.
    """

    def __init__(self, track: MediaStreamTrack, fft_size: int = 64,
                 smoothing_time_constant: float = 0.8,
                 min_decibels: float = -100.0, max_decibels: float = -30.0):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if not 0.0 <= smoothing_time_constant <= 1.0:
            raise ValueError("smoothing_time_constant must be within [0, 1]")

        self.track = track
        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self.samples = np.zeros(fft_size, dtype=np.float64)
        self.window = np.blackman(fft_size)
        self.smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)
        track.subscribe(self.on_frame)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def on_frame(self, frame: np.ndarray) -> None:
        data = frame.astype(np.float64) / 32768.0
        if len(data) >= self.fft_size:
            self.samples = data[-self.fft_size:].copy()
        else:
            self.samples = np.concatenate((self.samples[len(data):], data))

    def get_byte_frequency_data(self) -> np.ndarray:
        """Current smoothed spectrum as uint8 values, one per frequency bin."""
        spectrum = np.fft.rfft(self.samples * self.window)[:self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size

        tau = self.smoothing_time_constant
        self.smoothed = tau * self.smoothed + (1.0 - tau) * magnitude

        with np.errstate(divide='ignore'):
            decibels = 20.0 * np.log10(self.smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor(scale * (decibels - self.min_decibels))
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def detach(self) -> None:
        self.track.unsubscribe(self.on_frame)


class LevelAnalyzer:
    """Publishes band levels of a track on a fixed animation cadence."""

    def __init__(self, track: MediaStreamTrack,
                 on_levels: Optional[Callable[[List[float]], None]] = None,
                 band_count: int = DEFAULT_BAND_COUNT, ceiling: float = LEVEL_CEILING,
                 frame_interval: float = 0.016, fft_size: int = 64,
                 smoothing_time_constant: float = 0.8):
        self.analyser = FrequencyAnalyser(track, fft_size=fft_size,
                                          smoothing_time_constant=smoothing_time_constant)
        self.on_levels = on_levels
        self.band_count = band_count
        self.ceiling = ceiling
        self.frame_interval = frame_interval
        self.levels: List[float] = [0.0] * band_count
        self._task: Optional[asyncio.Task] = None
        self.cancelled = False

    def update(self) -> List[float]:
        """Take one snapshot and publish the resulting levels."""
        self.levels = compute_levels(self.analyser.get_byte_frequency_data(),
                                     self.band_count, self.ceiling)
        if self.on_levels:
            self.on_levels(self.levels)
        return self.levels

    def start(self) -> None:
        if self._task is not None or self.cancelled:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            self.update()
            await asyncio.sleep(self.frame_interval)

    def cancel(self) -> None:
        """Stop the loop and detach from the track. Safe to call repeatedly."""
        if self.cancelled:
            return
        self.cancelled = True
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.analyser.detach()
