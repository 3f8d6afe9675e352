"""Processing thread fanning buffered audio out to meter, analyzer and assembler."""

import logging
import threading
from typing import Optional, Tuple, Union

from ..audio.assembler import RecordingAssembler
from ..audio.buffer import RingBuffer
from ..audio.level_meter import LevelMeter
from ..audio.spectrum import SpectrumAnalyzer
from ..audio.waveform import WaveformAnalyzer
from ..models.audio import LevelSnapshot, SpectrumFrame, WaveformFrame

logger = logging.getLogger(__name__)

Analyzer = Union[SpectrumAnalyzer, WaveformAnalyzer]
Frame = Union[SpectrumFrame, WaveformFrame]


class AudioPipeline:
    """Reads the ring buffer through one cursor per consumer.

    The renderer never touches the buffer: it polls ``latest_level()`` and
    ``latest_frame()``, which return the newest result together with a version
    number that only increases when a new result is stored.
    """

    def __init__(
        self,
        buffer: RingBuffer,
        level_meter: LevelMeter,
        analyzer: Analyzer,
        assembler: RecordingAssembler,
        poll_interval: float = 0.05,
    ):
        self.buffer = buffer
        self.level_meter = level_meter
        self.analyzer = analyzer
        self.assembler = assembler
        self.poll_interval = poll_interval

        # Cursors start at the oldest chunk so nothing captured before
        # construction is missed
        self.assembler_cursor = buffer.cursor("assembler", priority=True, from_oldest=True)
        self.meter_cursor = buffer.cursor("level_meter", from_oldest=True)
        self.analyzer_cursor = buffer.cursor("analyzer", from_oldest=True)

        self._analyzer_lock = threading.Lock()
        self._latest_lock = threading.Lock()
        self._level: Optional[LevelSnapshot] = None
        self._level_version = 0
        self._frame: Optional[Frame] = None
        self._frame_version = 0

        self.thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()
        self.chunks_processed = 0
        self.chunks_committed = 0
        self.error: Optional[Exception] = None

    def process_pending(self) -> int:
        """Feed every unread chunk to its consumers. Returns chunks processed."""
        committed = 0
        for chunk in self.assembler_cursor.read():
            if self.assembler.commit(chunk):
                committed += 1
        self.chunks_committed += committed

        snapshot = None
        chunks = self.meter_cursor.read()
        for chunk in chunks:
            snapshot = self.level_meter.observe(chunk)
        if snapshot is not None:
            with self._latest_lock:
                self._level = snapshot
                self._level_version += 1

        frame = None
        with self._analyzer_lock:
            for chunk in self.analyzer_cursor.read():
                frame = self.analyzer.observe(chunk)
        if frame is not None:
            with self._latest_lock:
                self._frame = frame
                self._frame_version += 1

        self.chunks_processed += len(chunks)
        return len(chunks)

    def latest_level(self) -> Tuple[int, Optional[LevelSnapshot]]:
        with self._latest_lock:
            return self._level_version, self._level

    def latest_frame(self) -> Tuple[int, Optional[Frame]]:
        with self._latest_lock:
            return self._frame_version, self._frame

    def resize(self, columns: int) -> None:
        """Resize the analyzer output, e.g. after the terminal was resized."""
        with self._analyzer_lock:
            if columns != self.analyzer.columns:
                logger.debug(f"Resizing analyzer to {columns} columns")
                self.analyzer.resize(columns)

    @property
    def gap_count(self) -> int:
        return self.meter_cursor.gap_count + self.analyzer_cursor.gap_count

    def start(self) -> None:
        """Start processing on a background thread."""
        if self.thread and self.thread.is_alive():
            logger.warning("Pipeline already running")
            return
        self.stop_event.clear()
        self.thread = threading.Thread(target=self._process_continuously, daemon=True)
        self.thread.name = "AudioPipelineThread"
        self.thread.start()
        logger.info("Audio pipeline started")

    def stop(self, drain: bool = True) -> None:
        """Stop the processing thread.

        Args:
            drain: Process whatever is still buffered before returning
        """
        self.stop_event.set()
        self.buffer.close()
        thread = self.thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
            if thread.is_alive():
                logger.warning("Pipeline thread did not stop cleanly")
        if drain:
            self.process_pending()
        logger.info(f"Audio pipeline stopped: {self.get_stats()}")

    def _process_continuously(self) -> None:
        """Processing loop run on the background thread."""
        try:
            while not self.stop_event.is_set():
                self.assembler_cursor.wait(self.poll_interval)
                self.process_pending()
        except Exception as e:
            self.error = e
            logger.error(f"Audio pipeline failed: {e}", exc_info=True)

    def get_stats(self) -> dict:
        return {
            "chunks_processed": self.chunks_processed,
            "chunks_committed": self.chunks_committed,
            "gaps": self.gap_count,
            "buffer": self.buffer.get_buffer_stats(),
        }
