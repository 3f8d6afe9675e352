"""Time-domain waveform visualization.

Keeps a rolling window of recent audio and reduces it to one value per
display column by taking the peak magnitude within each column, so short
transients stay visible instead of being averaged away.
"""

import logging

import numpy as np

from ..models.audio import FULL_SCALE, SampleChunk, WaveformFrame

logger = logging.getLogger(__name__)


class WaveformAnalyzer:
    """Scrolling peak-hold waveform over the last ``window_seconds`` of audio."""

    def __init__(self, sample_rate: int, columns: int = 80, window_seconds: float = 4.0):
        if columns < 1:
            raise ValueError("columns must be positive")
        self.sample_rate = sample_rate
        self.window_seconds = window_seconds
        self.columns = columns
        self._window = np.zeros(max(columns, int(round(sample_rate * window_seconds))), dtype=np.float32)
        self.frames_computed = 0

    def resize(self, columns: int) -> None:
        """Change the number of display columns, keeping the audio history."""
        if columns < 1 or columns == self.columns:
            return
        self.columns = columns
        if self._window.size < columns:
            grown = np.zeros(columns, dtype=np.float32)
            grown[-self._window.size:] = self._window
            self._window = grown

    def _push(self, samples: np.ndarray) -> None:
        n = samples.size
        if n == 0:
            return
        if n >= self._window.size:
            self._window[:] = samples[-self._window.size:]
        else:
            self._window[:-n] = self._window[n:]
            self._window[-n:] = samples

    def observe(self, chunk: SampleChunk) -> WaveformFrame:
        """Add a chunk to the rolling window and return the current frame."""
        self._push(np.abs(chunk.mono()))

        # Column boundaries spread any remainder evenly instead of dropping samples
        edges = np.linspace(0, self._window.size, self.columns + 1).astype(int)
        peaks = np.maximum.reduceat(self._window, edges[:-1]) / FULL_SCALE
        self.frames_computed += 1

        return WaveformFrame(tuple(float(min(1.0, v)) for v in peaks),
                             chunk.sequence_number, chunk.timestamp)
