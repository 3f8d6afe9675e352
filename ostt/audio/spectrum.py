"""Frequency spectrum analysis focused on the human voice range.

Each observed chunk is pushed into a rolling analysis window of ``fft_size``
samples. Once the window is full, the window is tapered with a Hann window,
transformed with a real FFT and the magnitude spectrum is grouped into display
buckets. Most buckets are spent on 100-1500 Hz (voice fundamentals and their
first harmonics); the remaining few cover the rest of the spectrum coarsely.

Bucket levels are expressed in RMS-equivalent dBFS and mapped onto the same
40 dB scale as the level meter, so a spectral peak and a meter peak line up.
A per-bucket noise gate zeroes buckets that do not rise above the ambient
noise estimate.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
from scipy.signal import get_window

from ..models.audio import FULL_SCALE, SampleChunk, SpectrumFrame
from .level_meter import METER_RANGE_DB, meter_percent, rms_dbfs

logger = logging.getLogger(__name__)

VOICE_BAND_HZ = (100.0, 1500.0)
STATIC_GATE_BELOW_REFERENCE_DB = 35.0
# The gate never rises closer than this to the reference level
GATE_CEILING_BELOW_REFERENCE_DB = 10.0


class SpectrumAnalyzer:
    """Stateful spectrum analyzer producing noise-gated display buckets."""

    def __init__(
        self,
        sample_rate: int,
        num_buckets: int = 64,
        fft_size: int = 2048,
        reference_level_db: float = -20.0,
        peak_volume_threshold: int = 90,
        silence_floor_db: float = -100.0,
        voice_band_share: float = 0.75,
        gate_margin_db: float = 6.0,
        noise_rise_alpha: float = 0.02,
        noise_fall_alpha: float = 0.3,
        smoothing: float = 0.5,
    ):
        """Initialize spectrum analyzer.

        Args:
            sample_rate: Audio sample rate in Hz
            num_buckets: Number of display buckets (typically terminal width)
            fft_size: Analysis window length, must be a power of two
            reference_level_db: dBFS shown as full height
            peak_volume_threshold: Meter percent above which the noise estimate is frozen
            silence_floor_db: dBFS reported for empty buckets
            voice_band_share: Fraction of buckets spent on 100-1500 Hz
            gate_margin_db: How far above the noise estimate a bucket must be to show
            noise_rise_alpha: EMA weight when the noise estimate increases
            noise_fall_alpha: EMA weight when the noise estimate decreases
            smoothing: Weight of the previous frame in the displayed values
        """
        if fft_size < 2 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two, got {fft_size}")
        if num_buckets < 1:
            raise ValueError("num_buckets must be positive")

        self.sample_rate = sample_rate
        self.fft_size = fft_size
        self.reference_level_db = reference_level_db
        self.peak_volume_threshold = peak_volume_threshold
        self.silence_floor_db = silence_floor_db
        self.voice_band_share = min(1.0, max(0.0, voice_band_share))
        self.gate_margin_db = gate_margin_db
        self.noise_rise_alpha = noise_rise_alpha
        self.noise_fall_alpha = noise_fall_alpha
        self.smoothing = smoothing

        self._taper = get_window("hann", fft_size).astype(np.float64)
        self._amplitude_scale = 2.0 / float(np.sum(self._taper))
        self.freq_resolution = sample_rate / fft_size

        self._window = np.zeros(fft_size, dtype=np.float64)
        self._filled = 0
        self.frames_computed = 0

        self.num_buckets = num_buckets
        self._buckets: List[Tuple[int, int]] = []
        self.bucket_edges_hz: np.ndarray = np.zeros(0)
        self._noise_db: Optional[np.ndarray] = None
        self._display = np.zeros(num_buckets)
        self._build_buckets()

    @property
    def columns(self) -> int:
        return self.num_buckets

    @property
    def is_warmed_up(self) -> bool:
        return self._filled >= self.fft_size

    def _build_buckets(self) -> None:
        """Compute bucket edges in Hz and the FFT bin range each bucket averages."""
        n = self.num_buckets
        nyquist = self.sample_rate / 2.0
        voice_low = VOICE_BAND_HZ[0]
        voice_high = min(VOICE_BAND_HZ[1], nyquist)

        # Every bucket spans at least one FFT bin so no two buckets average the same bins
        max_voice = max(1, int((voice_high - voice_low) // self.freq_resolution))
        n_voice = n if n < 3 else max(1, int(round(n * self.voice_band_share)))
        n_voice = min(n_voice, max_voice)
        voice_width = (voice_high - voice_low) / n_voice

        # Buckets outside the voice band are strictly wider than the voice buckets
        n_outside = n - n_voice
        low_span = voice_low - self.freq_resolution
        min_width = max(voice_width, self.freq_resolution)
        n_low = min(n_outside // 3, max(0, int(np.ceil(low_span / min_width)) - 1))
        n_high = n_outside - n_low

        edges = [np.linspace(voice_low, voice_high, n_voice + 1)]
        if n_low:
            edges.insert(0, np.linspace(self.freq_resolution, voice_low, n_low + 1)[:-1])
        if n_high:
            high_edges = np.geomspace(voice_high, nyquist, n_high + 1)
            if high_edges[1] - high_edges[0] <= min_width:
                high_edges = np.linspace(voice_high, nyquist, n_high + 1)
            edges.append(high_edges[1:])
        self.bucket_edges_hz = np.concatenate(edges)

        last_bin = self.fft_size // 2 + 1
        self._buckets = []
        previous_start = -1
        for low_hz, high_hz in zip(self.bucket_edges_hz[:-1], self.bucket_edges_hz[1:]):
            start = min(max(int(low_hz / self.freq_resolution), previous_start + 1), last_bin - 1)
            end = min(max(start + 1, int(high_hz / self.freq_resolution)), last_bin)
            self._buckets.append((start, end))
            previous_start = start

        logger.debug(f"Spectrum buckets: {n_low} low / {n_voice} voice / {n_high} high, "
                     f"{self.freq_resolution:.1f} Hz per bin")

    def resize(self, num_buckets: int) -> None:
        """Change the number of display buckets, e.g. after a terminal resize."""
        if num_buckets == self.num_buckets or num_buckets < 1:
            return
        self.num_buckets = num_buckets
        self._noise_db = None
        self._display = np.zeros(num_buckets)
        self._build_buckets()

    def _push(self, samples: np.ndarray) -> None:
        n = samples.size
        if n == 0:
            return
        if n >= self.fft_size:
            self._window[:] = samples[-self.fft_size:]
        else:
            self._window[:-n] = self._window[n:]
            self._window[-n:] = samples
        self._filled = min(self.fft_size, self._filled + n)

    def _bucket_levels_db(self) -> np.ndarray:
        spectrum = np.abs(np.fft.rfft(self._window * self._taper)) * self._amplitude_scale
        levels = np.empty(self.num_buckets)
        for i, (start, end) in enumerate(self._buckets):
            magnitude = float(np.mean(spectrum[start:end]))
            # Sine amplitude to RMS, so a pure tone reads the same as on the level meter
            rms = magnitude / np.sqrt(2.0)
            if rms > 0:
                levels[i] = max(self.silence_floor_db, 20.0 * np.log10(rms / FULL_SCALE))
            else:
                levels[i] = self.silence_floor_db
        return levels

    def _gate_floor(self) -> np.ndarray:
        static_gate = self.reference_level_db - STATIC_GATE_BELOW_REFERENCE_DB
        ceiling = self.reference_level_db - GATE_CEILING_BELOW_REFERENCE_DB
        if self._noise_db is None:
            return np.full(self.num_buckets, static_gate)
        return np.clip(self._noise_db + self.gate_margin_db, static_gate, ceiling)

    def _update_noise(self, levels_db: np.ndarray) -> None:
        if self._noise_db is None:
            self._noise_db = levels_db.copy()
            return
        alpha = np.where(levels_db > self._noise_db, self.noise_rise_alpha, self.noise_fall_alpha)
        self._noise_db = (1.0 - alpha) * self._noise_db + alpha * levels_db

    def observe(self, chunk: SampleChunk) -> SpectrumFrame:
        """Add a chunk to the analysis window and return the current frame."""
        samples = chunk.mono()
        self._push(samples)

        if not self.is_warmed_up:
            return SpectrumFrame(tuple(0.0 for _ in range(self.num_buckets)),
                                 chunk.sequence_number, chunk.timestamp)

        levels_db = self._bucket_levels_db()

        level = meter_percent(rms_dbfs(samples, self.silence_floor_db), self.reference_level_db)
        if level < self.peak_volume_threshold:
            self._update_noise(levels_db)

        floor = self._gate_floor()
        meter_min_db = self.reference_level_db - METER_RANGE_DB
        normalized = np.clip((levels_db - meter_min_db) / METER_RANGE_DB, 0.0, 1.0)
        normalized[levels_db < floor] = 0.0

        self._display = self.smoothing * self._display + (1.0 - self.smoothing) * normalized
        self._display = np.clip(self._display, 0.0, 1.0)
        self.frames_computed += 1

        return SpectrumFrame(tuple(float(v) for v in self._display),
                             chunk.sequence_number, chunk.timestamp)
