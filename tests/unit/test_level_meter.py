"""Unit tests for LevelMeter and the dBFS helpers."""

import numpy as np
import pytest

from ostt.audio.level_meter import LevelMeter, meter_percent, rms_dbfs, to_dbfs


@pytest.mark.unit
class TestDbfsHelpers:
    """Test cases for the dBFS conversion helpers."""

    def test_full_scale_is_zero_dbfs(self):
        assert to_dbfs(32767.0, -100.0) == pytest.approx(0.0)

    def test_zero_is_floored(self):
        assert to_dbfs(0.0, -100.0) == -100.0
        assert rms_dbfs(np.zeros(1024, dtype=np.float32), -90.0) == -90.0

    def test_empty_samples_are_silence(self):
        assert rms_dbfs(np.array([], dtype=np.float32), -100.0) == -100.0

    def test_half_scale_is_about_minus_six(self):
        assert to_dbfs(32767.0 / 2, -100.0) == pytest.approx(-6.02, abs=0.01)

    @pytest.mark.parametrize("dbfs,expected", [
        (-20.0, 100),
        (-40.0, 50),
        (0.0, 100),
        (-100.0, 4),
    ])
    def test_meter_percent(self, dbfs, expected):
        assert meter_percent(dbfs, -20.0) == expected


@pytest.mark.unit
class TestLevelMeter:
    """Test cases for LevelMeter."""

    def test_silence(self, make_chunk):
        meter = LevelMeter(reference_level_db=-20, silence_floor_db=-100)

        snapshot = meter.observe(make_chunk("silence"))

        assert snapshot.instantaneous_dbfs == -100.0
        assert snapshot.peak_dbfs_3s == -100.0
        assert snapshot.clipping is False

    def test_sine_level(self, make_chunk):
        """A sine at 10% of full scale has RMS about 3 dB below its peak."""
        meter = LevelMeter()

        snapshot = meter.observe(make_chunk("sine", amplitude=0.1))

        assert snapshot.instantaneous_dbfs == pytest.approx(-23.0, abs=0.2)
        assert snapshot.peak_dbfs_3s == pytest.approx(-20.0, abs=0.2)
        assert snapshot.peak_dbfs_3s >= snapshot.instantaneous_dbfs
        assert snapshot.clipping is False

    def test_full_scale_clips_immediately(self, make_chunk):
        meter = LevelMeter(reference_level_db=-20)

        snapshot = meter.observe(make_chunk("full_scale"))

        assert snapshot.clipping is True
        assert snapshot.peak_dbfs_3s >= meter.reference_level_db
        assert meter.clip_count == 1

    def test_single_full_scale_sample_clips(self, make_chunk):
        samples = np.zeros(1024, dtype=np.int16)
        samples[100] = 32767
        meter = LevelMeter(reference_level_db=-20)

        snapshot = meter.observe(make_chunk(data=samples.tobytes()))

        assert snapshot.clipping is True
        assert snapshot.peak_dbfs_3s >= -20

    def test_negative_full_scale_clips(self, make_chunk):
        samples = np.full(1024, -32768, dtype=np.int16)
        meter = LevelMeter()

        assert meter.observe(make_chunk(data=samples.tobytes())).clipping is True

    def test_peak_holds_for_three_seconds(self, make_chunk):
        meter = LevelMeter()
        loud = meter.observe(make_chunk("sine", amplitude=0.5, timestamp=0.0))

        held = meter.observe(make_chunk("sine", amplitude=0.01, timestamp=2.0))
        assert held.peak_dbfs_3s == pytest.approx(loud.peak_dbfs_3s)
        assert held.instantaneous_dbfs < loud.instantaneous_dbfs

        expired = meter.observe(make_chunk("sine", amplitude=0.01, timestamp=3.5))
        assert expired.peak_dbfs_3s < loud.peak_dbfs_3s
        assert expired.peak_dbfs_3s >= expired.instantaneous_dbfs

    def test_stereo_is_measured_as_mono(self, make_chunk):
        meter = LevelMeter()

        mono = meter.observe(make_chunk("sine", amplitude=0.2))
        stereo = meter.observe(make_chunk("sine", amplitude=0.2, channels=2))

        assert stereo.instantaneous_dbfs == pytest.approx(mono.instantaneous_dbfs, abs=0.01)

    def test_snapshot_carries_sequence_number(self, make_chunk):
        meter = LevelMeter()

        snapshot = meter.observe(make_chunk(sequence_number=42, timestamp=1.5))

        assert snapshot.sequence_number == 42
        assert snapshot.timestamp == 1.5

