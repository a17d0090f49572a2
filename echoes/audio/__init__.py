"""Audio capture, mixing and encoding."""

from .acquirer import StreamAcquirer
from .analyser import LevelAnalyzer, compute_levels
from .encoder import ChunkEncoder, assemble_artifact
from .media import MediaConstraints, MediaStream, MediaStreamTrack
from .mixer import MixingGraph, ProcessingContext
from .platform import AbstractAudioSink, AbstractMediaPlatform

__all__ = [
    'StreamAcquirer',
    'LevelAnalyzer',
    'compute_levels',
    'ChunkEncoder',
    'assemble_artifact',
    'MediaConstraints',
    'MediaStream',
    'MediaStreamTrack',
    'MixingGraph',
    'ProcessingContext',
    'AbstractAudioSink',
    'AbstractMediaPlatform',
]
