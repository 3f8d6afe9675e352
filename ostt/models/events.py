"""Event models for pub/sub notifications."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .session import RecordingState


@dataclass
class StateChangeEvent:
    """Recording state transition."""
    session_id: str
    previous: RecordingState
    current: RecordingState
    boundary_sequence: Optional[int] = None  # First chunk governed by the new state
    reason: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class GapEvent:
    """A buffer consumer was resynchronized after falling behind."""
    consumer: str
    expected_sequence: int
    resumed_sequence: int
    missed_chunks: int
    timestamp: datetime = field(default_factory=datetime.now)
