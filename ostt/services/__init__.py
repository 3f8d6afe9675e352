"""Session services: processing pipeline and recording lifecycle."""

from .pipeline import AudioPipeline
from .recording_service import RecordingStateMachine

__all__ = [
    'AudioPipeline',
    'RecordingStateMachine',
]
