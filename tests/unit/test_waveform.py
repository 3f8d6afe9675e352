"""Unit tests for WaveformAnalyzer."""

import numpy as np
import pytest

from ostt.audio.waveform import WaveformAnalyzer


@pytest.mark.unit
class TestWaveformAnalyzer:
    """Test cases for WaveformAnalyzer."""

    def test_silence(self, make_chunk):
        analyzer = WaveformAnalyzer(16000, columns=80)

        frame = analyzer.observe(make_chunk("silence"))

        assert frame.columns == 80
        assert all(v == 0.0 for v in frame.values)

    def test_new_audio_enters_on_the_right(self, make_chunk):
        analyzer = WaveformAnalyzer(16000, columns=80, window_seconds=4.0)

        frame = analyzer.observe(make_chunk("full_scale"))

        assert frame.values[-1] == pytest.approx(1.0)
        assert frame.values[0] == 0.0

    def test_peak_hold_keeps_single_spike(self, make_chunk):
        """A one-sample transient survives downsampling to a few columns."""
        samples = np.zeros(1024, dtype=np.int16)
        samples[500] = 16384
        analyzer = WaveformAnalyzer(16000, columns=10, window_seconds=1024 / 16000)

        frame = analyzer.observe(make_chunk(data=samples.tobytes()))

        assert max(frame.values) == pytest.approx(0.5, abs=0.01)
        assert sum(1 for v in frame.values if v > 0) == 1

    def test_negative_peaks_count(self, make_chunk):
        samples = np.full(1024, -32768, dtype=np.int16)
        analyzer = WaveformAnalyzer(16000, columns=4, window_seconds=1024 / 16000)

        frame = analyzer.observe(make_chunk(data=samples.tobytes()))

        assert all(v == 1.0 for v in frame.values)

    def test_window_scrolls(self, make_chunk):
        analyzer = WaveformAnalyzer(16000, columns=4, window_seconds=2048 / 16000)
        analyzer.observe(make_chunk("full_scale", sequence_number=0))

        frame = analyzer.observe(make_chunk("silence", sequence_number=1))

        assert frame.values[0] == pytest.approx(1.0)
        assert frame.values[-1] == 0.0

    def test_resize(self, make_chunk):
        analyzer = WaveformAnalyzer(16000, columns=80)
        analyzer.observe(make_chunk("sine"))

        analyzer.resize(120)
        frame = analyzer.observe(make_chunk("sine", sequence_number=1))

        assert analyzer.columns == 120
        assert frame.columns == 120

    def test_more_columns_than_samples(self, make_chunk):
        analyzer = WaveformAnalyzer(16000, columns=200, window_seconds=0.001)

        frame = analyzer.observe(make_chunk("sine"))

        assert frame.columns == 200
        assert all(0.0 <= v <= 1.0 for v in frame.values)

    def test_invalid_columns(self):
        with pytest.raises(ValueError):
            WaveformAnalyzer(16000, columns=0)
