"""Pytest configuration and fixtures for ostt tests."""

import os
import logging
import tempfile
import threading
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np
import pytest

from ostt.config import AudioSettings
from ostt.exceptions import DeviceLost
from ostt.models.audio import SampleChunk


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without audio hardware")
    config.addinivalue_line("markers", "integration: multi-component tests with scripted audio")
    config.addinivalue_line("markers", "slow: tests that take more than a second")
    config.addinivalue_line("markers", "hardware: tests that need a real microphone")


def pytest_collection_modifyitems(config, items):
    if os.environ.get("OSTT_HARDWARE_TESTS") == "1":
        return
    skip_hardware = pytest.mark.skip(reason="set OSTT_HARDWARE_TESTS=1 to run hardware tests")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


def generate_pcm(pattern: str = "sine", duration_seconds: float = 1.0, sample_rate: int = 16000,
                 amplitude: float = 0.5, frequency: float = 440.0, channels: int = 1) -> bytes:
    """Generate 16-bit PCM test audio.

    Args:
        pattern: 'sine', 'noise', 'silence' or 'full_scale'
        duration_seconds: Duration of audio
        sample_rate: Sample rate in Hz
        amplitude: Peak amplitude as a fraction of full scale
        frequency: Sine frequency in Hz
        channels: Interleaved channel count (all channels identical)
    """
    samples = int(round(duration_seconds * sample_rate))

    if pattern == "sine":
        t = np.arange(samples) / sample_rate
        wave_data = amplitude * np.sin(2 * np.pi * frequency * t)
    elif pattern == "noise":
        rng = np.random.default_rng(1234)
        wave_data = rng.uniform(-amplitude, amplitude, samples)
    elif pattern == "silence":
        wave_data = np.zeros(samples)
    elif pattern == "full_scale":
        wave_data = np.ones(samples)
    else:
        raise ValueError(f"Unknown pattern: {pattern}")

    audio_data = np.round(wave_data * 32767).astype(np.int16)
    if channels > 1:
        audio_data = np.repeat(audio_data, channels)
    return audio_data.tobytes()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    return generate_pcm


@pytest.fixture
def make_chunk():
    """Build SampleChunks from a pattern or raw bytes."""
    def _make(pattern: str = "sine", sequence_number: int = 0, timestamp: Optional[float] = None,
              frames: int = 1024, sample_rate: int = 16000, data: Optional[bytes] = None,
              channels: int = 1, **kwargs) -> SampleChunk:
        if data is None:
            data = generate_pcm(pattern, frames / sample_rate, sample_rate, channels=channels, **kwargs)
        if timestamp is None:
            timestamp = sequence_number * frames / sample_rate
        return SampleChunk(data=data, sequence_number=sequence_number, timestamp=timestamp,
                           sample_rate=sample_rate, channels=channels)
    return _make


TEST_DEVICE_INFO = {
    "index": 0,
    "name": "Test Microphone",
    "maxInputChannels": 2,
    "defaultSampleRate": 48000.0,
}


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # 1024 frames of silence
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance with a single input device
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2
        mock_pyaudio_instance.get_device_count.return_value = 1
        mock_pyaudio_instance.get_device_info_by_index.return_value = dict(TEST_DEVICE_INFO)
        mock_pyaudio_instance.get_default_input_device_info.return_value = dict(TEST_DEVICE_INFO)
        mock_pyaudio_instance.is_format_supported.return_value = True

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


class FakeSource:
    """Scripted stand-in for SampleSource; chunks are emitted by the test."""

    def __init__(self, settings: AudioSettings, callback, on_error=None, start_error=None):
        self.chunk_callback = callback
        self.on_error = on_error
        self.start_error = start_error
        self.sample_rate = settings.sample_rate
        self.channels = settings.channels
        self.chunk_size = settings.chunk_size
        self.sequence_lock = threading.Lock()
        self._next_sequence = 0
        self.total_chunks = 0
        self.started = False
        self.stop_calls = 0
        self.is_running = False

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True
        self.is_running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self.is_running = False

    def emit(self, data: bytes) -> SampleChunk:
        with self.sequence_lock:
            chunk = SampleChunk(
                data=data,
                sequence_number=self._next_sequence,
                timestamp=self._next_sequence * self.chunk_size / self.sample_rate,
                sample_rate=self.sample_rate,
                channels=self.channels,
            )
            self._next_sequence += 1
            self.total_chunks += 1
            self.chunk_callback(chunk)
        return chunk

    def emit_audio(self, pattern: str, seconds: float, **kwargs) -> List[SampleChunk]:
        """Emit ``seconds`` of audio split into chunk_size frames."""
        pcm = generate_pcm(pattern, seconds, self.sample_rate, channels=self.channels, **kwargs)
        step = self.chunk_size * 2 * self.channels
        return [self.emit(pcm[i:i + step]) for i in range(0, len(pcm), step)]

    def fail(self, error: Optional[Exception] = None) -> None:
        self.is_running = False
        if self.on_error:
            self.on_error(error or DeviceLost("Audio input device lost: device unplugged"))


class FakeSourceFactory:
    """Source factory that remembers the source it built."""

    def __init__(self, start_error: Optional[Exception] = None):
        self.start_error = start_error
        self.source: Optional[FakeSource] = None

    def __call__(self, settings, callback, on_error=None) -> FakeSource:
        self.source = FakeSource(settings, callback, on_error, start_error=self.start_error)
        return self.source


@pytest.fixture
def fake_source_factory():
    """Create a factory for scripted sample sources."""
    return FakeSourceFactory


@pytest.fixture
def audio_settings():
    """Audio settings with 100 ms chunks so durations come out exact."""
    return AudioSettings(sample_rate=16000, chunk_size=1600, buffer_capacity=64)


@pytest.fixture
def mock_encoder(tmp_path):
    """Encoder double that records what it was asked to encode."""
    encoder = Mock()
    encoder.encode.return_value = tmp_path / "ostt-recording.mp3"
    return encoder


