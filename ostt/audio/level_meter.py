"""Audio level metering: dBFS, sliding peak hold and clip detection."""

import math
import logging
from collections import deque
from typing import Deque, Tuple

import numpy as np

from ..models.audio import FULL_SCALE, LevelSnapshot, SampleChunk

logger = logging.getLogger(__name__)

PEAK_WINDOW_SECONDS = 3.0
METER_RANGE_DB = 40.0
METER_MIN_PERCENT = 4
# Sample magnitudes at or above this are treated as hitting the rails
CLIP_SAMPLE_DBFS = -0.1
# RMS this far above the reference level is louder than the meter can show
RMS_CLIP_HEADROOM_DB = 12.0


def to_dbfs(value: float, silence_floor_db: float) -> float:
    """Convert a PCM magnitude to dBFS, floored at silence_floor_db."""
    if value <= 0:
        return silence_floor_db
    return max(silence_floor_db, 20.0 * math.log10(value / FULL_SCALE))


def rms_dbfs(samples: np.ndarray, silence_floor_db: float) -> float:
    """RMS level of PCM samples in dBFS."""
    if samples.size == 0:
        return silence_floor_db
    rms = float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))
    return to_dbfs(rms, silence_floor_db)


def meter_percent(dbfs: float, reference_level_db: float) -> int:
    """Map dBFS onto the 0-100% meter scale, 100% at the reference level."""
    min_db = reference_level_db - METER_RANGE_DB
    normalized = (dbfs - min_db) / METER_RANGE_DB * 100.0
    return int(min(100.0, max(float(METER_MIN_PERCENT), normalized)))


class LevelMeter:
    """Track instantaneous and trailing-peak levels for one audio stream."""

    def __init__(
        self,
        reference_level_db: float = -20.0,
        silence_floor_db: float = -100.0,
        peak_window_seconds: float = PEAK_WINDOW_SECONDS,
    ):
        """Initialize level meter.

        Args:
            reference_level_db: dBFS shown as 100% on the meter
            silence_floor_db: Lowest reported dBFS value
            peak_window_seconds: Length of the trailing peak-hold window
        """
        self.reference_level_db = reference_level_db
        self.silence_floor_db = silence_floor_db
        self.peak_window_seconds = peak_window_seconds
        self.rms_clip_dbfs = min(CLIP_SAMPLE_DBFS, reference_level_db + RMS_CLIP_HEADROOM_DB)

        # (capture timestamp, chunk peak dBFS) over the trailing window
        self._history: Deque[Tuple[float, float]] = deque()
        self.clip_count = 0

    def observe(self, chunk: SampleChunk) -> LevelSnapshot:
        """Measure a chunk and return the updated snapshot."""
        samples = chunk.mono()
        instantaneous = rms_dbfs(samples, self.silence_floor_db)

        raw = chunk.samples
        sample_peak = float(np.max(np.abs(raw.astype(np.int32)))) if raw.size else 0.0
        peak_dbfs = max(instantaneous, to_dbfs(sample_peak, self.silence_floor_db))

        now = chunk.timestamp
        self._history.append((now, peak_dbfs))
        while self._history and now - self._history[0][0] > self.peak_window_seconds:
            self._history.popleft()
        peak_3s = max(level for _, level in self._history)

        clipping = instantaneous >= self.rms_clip_dbfs or peak_dbfs >= CLIP_SAMPLE_DBFS
        if clipping:
            self.clip_count += 1
            logger.debug(f"Clipping on chunk {chunk.sequence_number}: "
                         f"rms={instantaneous:.1f} dBFS, peak={peak_dbfs:.1f} dBFS")

        return LevelSnapshot(
            instantaneous_dbfs=instantaneous,
            peak_dbfs_3s=peak_3s,
            clipping=clipping,
            timestamp=now,
            sequence_number=chunk.sequence_number,
        )
