"""Unit tests for AudioPipeline."""

import time
from unittest.mock import Mock

import pytest

from ostt.audio.assembler import RecordingAssembler
from ostt.audio.buffer import RingBuffer
from ostt.audio.level_meter import LevelMeter
from ostt.audio.waveform import WaveformAnalyzer
from ostt.services.pipeline import AudioPipeline


@pytest.fixture
def pipeline_parts():
    gaps = []
    buffer = RingBuffer(capacity=8, on_gap=gaps.append)
    parts = {
        "buffer": buffer,
        "level_meter": LevelMeter(),
        "analyzer": WaveformAnalyzer(16000, columns=20),
        "assembler": RecordingAssembler(16000),
    }
    return parts, gaps


def build(parts, **kwargs):
    return AudioPipeline(parts["buffer"], parts["level_meter"], parts["analyzer"],
                         parts["assembler"], **kwargs)


@pytest.mark.unit
class TestAudioPipeline:
    """Test cases for AudioPipeline."""

    def test_nothing_pending(self, pipeline_parts):
        parts, _ = pipeline_parts
        pipeline = build(parts)

        assert pipeline.process_pending() == 0
        assert pipeline.latest_level() == (0, None)
        assert pipeline.latest_frame() == (0, None)

    def test_process_pending_feeds_every_consumer(self, pipeline_parts, make_chunk):
        parts, _ = pipeline_parts
        pipeline = build(parts)
        parts["assembler"].open_interval(0)
        for i in range(3):
            parts["buffer"].append(make_chunk("sine", sequence_number=i))

        assert pipeline.process_pending() == 3

        level_version, level = pipeline.latest_level()
        frame_version, frame = pipeline.latest_frame()
        assert level_version == 1
        assert level.sequence_number == 2
        assert frame_version == 1
        assert len(frame.values) == 20
        assert parts["assembler"].committed_chunks == 3

    def test_chunks_before_construction_are_read(self, pipeline_parts, make_chunk):
        parts, _ = pipeline_parts
        parts["assembler"].open_interval(0)
        parts["buffer"].append(make_chunk(sequence_number=0))

        pipeline = build(parts)
        pipeline.process_pending()

        assert parts["assembler"].committed_chunks == 1

    def test_versions_only_move_on_new_data(self, pipeline_parts, make_chunk):
        parts, _ = pipeline_parts
        pipeline = build(parts)
        parts["buffer"].append(make_chunk(sequence_number=0))
        pipeline.process_pending()

        pipeline.process_pending()

        assert pipeline.latest_level()[0] == 1
        assert pipeline.latest_frame()[0] == 1

    def test_assembler_survives_overflow(self, pipeline_parts, make_chunk):
        """Display consumers skip ahead, the assembler still gets every chunk."""
        parts, gaps = pipeline_parts
        pipeline = build(parts)
        parts["assembler"].open_interval(0)
        for i in range(20):
            parts["buffer"].append(make_chunk(sequence_number=i))

        processed = pipeline.process_pending()

        assert parts["assembler"].committed_chunks == 20
        assert parts["assembler"].finalize().sequence_numbers == tuple(range(20))
        assert processed == 8
        assert pipeline.gap_count == 2
        assert {gap.consumer for gap in gaps} == {"level_meter", "analyzer"}

    def test_resize(self, pipeline_parts):
        parts, _ = pipeline_parts
        pipeline = build(parts)

        pipeline.resize(120)

        assert parts["analyzer"].columns == 120

    def test_stop_without_thread_drains(self, pipeline_parts, make_chunk):
        parts, _ = pipeline_parts
        pipeline = build(parts)
        parts["assembler"].open_interval(0)
        parts["buffer"].append(make_chunk(sequence_number=0))

        pipeline.stop(drain=True)

        assert parts["assembler"].committed_chunks == 1
        assert parts["buffer"].closed is True

    def test_stop_without_drain(self, pipeline_parts, make_chunk):
        parts, _ = pipeline_parts
        pipeline = build(parts)
        parts["assembler"].open_interval(0)
        parts["buffer"].append(make_chunk(sequence_number=0))

        pipeline.stop(drain=False)

        assert parts["assembler"].committed_chunks == 0

    def test_background_processing(self, pipeline_parts, make_chunk):
        parts, _ = pipeline_parts
        pipeline = build(parts, poll_interval=0.01)
        parts["assembler"].open_interval(0)
        pipeline.start()
        assert pipeline.thread.daemon is True

        for i in range(5):
            parts["buffer"].append(make_chunk(sequence_number=i))
        deadline = time.time() + 2.0
        while parts["assembler"].committed_chunks < 5 and time.time() < deadline:
            time.sleep(0.01)
        pipeline.stop()

        assert parts["assembler"].committed_chunks == 5
        assert not pipeline.thread.is_alive()
        stats = pipeline.get_stats()
        assert stats["chunks_committed"] == 5
        assert stats["chunks_processed"] == 5
        assert stats["gaps"] == 0

    def test_consumer_error_stops_thread(self, pipeline_parts, make_chunk):
        parts, _ = pipeline_parts
        analyzer = Mock(columns=20)
        analyzer.observe.side_effect = RuntimeError("analysis failed")
        parts["analyzer"] = analyzer
        pipeline = build(parts, poll_interval=0.01)
        pipeline.start()

        parts["buffer"].append(make_chunk(sequence_number=0))
        pipeline.thread.join(timeout=2.0)

        assert isinstance(pipeline.error, RuntimeError)
        assert not pipeline.thread.is_alive()
