"""Session-related data models."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .audio import Recording


class RecordingState(Enum):
    """Lifecycle state of a recording session."""
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (RecordingState.RECORDING, RecordingState.PAUSED)

    @property
    def is_terminal(self) -> bool:
        return self in (RecordingState.COMPLETED, RecordingState.CANCELLED)


@dataclass
class SessionOutcome:
    """What a finished session hands to its caller."""
    session_id: str
    state: RecordingState
    recording: Optional[Recording] = None
    output_path: Optional[Path] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.state == RecordingState.COMPLETED and self.error is None

    @property
    def duration_seconds(self) -> float:
        return self.recording.duration_seconds if self.recording else 0.0
