"""UI-related data models."""

from dataclasses import dataclass

from .session import RecordingState


@dataclass
class RecordingStatus:
    """Status information shown in the recording footer."""
    state: RecordingState = RecordingState.IDLE
    committed_seconds: float = 0.0
    committed_chunks: int = 0
    captured_chunks: int = 0
    dropped_chunks: int = 0
    gap_count: int = 0

    @property
    def is_paused(self) -> bool:
        return self.state == RecordingState.PAUSED
