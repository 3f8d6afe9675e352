"""Audio-related data models."""

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

BYTES_PER_SAMPLE = 2  # 16-bit PCM
FULL_SCALE = 32767.0


@dataclass(frozen=True)
class SampleChunk:
    """A block of interleaved 16-bit PCM captured in one hardware read."""
    data: bytes
    sequence_number: int
    timestamp: float  # Unix timestamp when the chunk was captured
    sample_rate: int = 16000
    channels: int = 1

    @property
    def frame_count(self) -> int:
        return len(self.data) // (BYTES_PER_SAMPLE * self.channels)

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / self.sample_rate

    @property
    def samples(self) -> np.ndarray:
        """Interleaved samples as a read-only int16 view."""
        return np.frombuffer(self.data, dtype=np.int16)

    def mono(self) -> np.ndarray:
        """Samples averaged across channels, as float32 in PCM units."""
        samples = self.samples[: self.frame_count * self.channels].astype(np.float32)
        if self.channels == 1:
            return samples
        return samples.reshape(-1, self.channels).mean(axis=1)


@dataclass(frozen=True)
class LevelSnapshot:
    """Loudness of the most recent chunk."""
    instantaneous_dbfs: float
    peak_dbfs_3s: float
    clipping: bool
    timestamp: float
    sequence_number: int = -1


@dataclass(frozen=True)
class SpectrumFrame:
    """Noise-gated spectrum magnitudes per display bucket, each in [0, 1]."""
    values: Tuple[float, ...]
    sequence_number: int = -1
    timestamp: float = 0.0

    @property
    def columns(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class WaveformFrame:
    """Peak-hold amplitude per display column, each in [0, 1]."""
    values: Tuple[float, ...]
    sequence_number: int = -1
    timestamp: float = 0.0

    @property
    def columns(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class Recording:
    """A sealed recording: committed chunks in capture order."""
    chunks: Tuple[SampleChunk, ...]
    sample_rate: int
    channels: int = 1
    pcm_data: bytes = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "pcm_data", b"".join(chunk.data for chunk in self.chunks))

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def frame_count(self) -> int:
        return len(self.pcm_data) // (BYTES_PER_SAMPLE * self.channels)

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / self.sample_rate if self.sample_rate else 0.0

    @property
    def is_empty(self) -> bool:
        return not self.pcm_data

    @property
    def sequence_numbers(self) -> Tuple[int, ...]:
        return tuple(chunk.sequence_number for chunk in self.chunks)

