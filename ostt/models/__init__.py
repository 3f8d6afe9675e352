"""Data models for the ostt application."""

from .audio import (
    SampleChunk,
    LevelSnapshot,
    SpectrumFrame,
    WaveformFrame,
    Recording,
)
from .session import RecordingState, SessionOutcome
from .events import StateChangeEvent, GapEvent
from .ui import RecordingStatus

__all__ = [
    "SampleChunk",
    "LevelSnapshot",
    "SpectrumFrame",
    "WaveformFrame",
    "Recording",
    "RecordingState",
    "SessionOutcome",
    "StateChangeEvent",
    "GapEvent",
    "RecordingStatus",
]
