"""Audio capture and processing module."""

from .capture import SampleSource
from .buffer import RingBuffer, RingCursor
from .level_meter import LevelMeter
from .spectrum import SpectrumAnalyzer
from .waveform import WaveformAnalyzer
from .assembler import RecordingAssembler
from .encoder import FFmpegEncoder

__all__ = [
    'SampleSource',
    'RingBuffer',
    'RingCursor',
    'LevelMeter',
    'SpectrumAnalyzer',
    'WaveformAnalyzer',
    'RecordingAssembler',
    'FFmpegEncoder',
]
