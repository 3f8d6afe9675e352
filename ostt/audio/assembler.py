"""Assembles the committed recording from captured chunks."""

import logging
import threading
from typing import List, Optional, Tuple

from ..models.audio import Recording, SampleChunk

logger = logging.getLogger(__name__)


class RecordingAssembler:
    """Accumulates chunks captured while the session was recording.

    Commit intervals are half-open ranges of capture sequence numbers. The
    state machine opens an interval at the first chunk captured after
    start/resume and closes it at the first chunk captured after pause/stop,
    so a state change never splits a chunk and processing lag cannot move
    audio across a pause boundary.
    """

    def __init__(self, sample_rate: int, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels

        self._lock = threading.Lock()
        self._chunks: List[SampleChunk] = []
        self._intervals: List[Tuple[int, Optional[int]]] = []
        self._last_sequence = -1
        self._sealed = False
        self.frames_committed = 0
        self.chunks_skipped = 0

    def open_interval(self, start_sequence: int) -> None:
        """Begin committing chunks with sequence numbers >= start_sequence."""
        with self._lock:
            if self._intervals and self._intervals[-1][1] is None:
                logger.warning("Commit interval already open, ignoring")
                return
            self._intervals.append((start_sequence, None))
        logger.debug(f"Commit interval opened at chunk {start_sequence}")

    def close_interval(self, end_sequence: int) -> None:
        """Stop committing chunks with sequence numbers >= end_sequence."""
        with self._lock:
            if not self._intervals or self._intervals[-1][1] is not None:
                logger.warning("No open commit interval to close")
                return
            start, _ = self._intervals[-1]
            self._intervals[-1] = (start, max(start, end_sequence))
        logger.debug(f"Commit interval closed at chunk {end_sequence}")

    def _is_committed(self, sequence_number: int) -> bool:
        for start, end in self._intervals:
            if sequence_number >= start and (end is None or sequence_number < end):
                return True
        return False

    def commit(self, chunk: SampleChunk) -> bool:
        """Append the chunk if it was captured during a recording interval.

        Returns:
            True if the chunk became part of the recording
        """
        with self._lock:
            if self._sealed:
                return False
            if not self._is_committed(chunk.sequence_number):
                self.chunks_skipped += 1
                return False
            if chunk.sequence_number <= self._last_sequence:
                logger.warning(f"Ignoring duplicate or out-of-order chunk {chunk.sequence_number}")
                return False
            self._chunks.append(chunk)
            self._last_sequence = chunk.sequence_number
            self.frames_committed += chunk.frame_count
            return True

    @property
    def committed_chunks(self) -> int:
        with self._lock:
            return len(self._chunks)

    @property
    def committed_seconds(self) -> float:
        return self.frames_committed / self.sample_rate

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def finalize(self) -> Recording:
        """Seal the assembler and return the immutable recording."""
        with self._lock:
            self._sealed = True
            recording = Recording(tuple(self._chunks), self.sample_rate, self.channels)
            self._chunks = []
        logger.info(f"Recording finalized: {recording.chunk_count} chunks, "
                    f"{recording.duration_seconds:.2f}s at {self.sample_rate}Hz")
        return recording

    def discard(self) -> int:
        """Release all committed audio. Returns the number of chunks dropped."""
        with self._lock:
            self._sealed = True
            dropped = len(self._chunks)
            self._chunks = []
            self.frames_committed = 0
        logger.info(f"Recording discarded ({dropped} chunks)")
        return dropped
