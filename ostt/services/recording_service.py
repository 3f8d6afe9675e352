"""Recording session lifecycle."""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

from ..audio.assembler import RecordingAssembler
from ..audio.audio_pub import GAP_TOPIC, STATE_TOPIC, EventPublisher
from ..audio.buffer import RingBuffer
from ..audio.capture import SampleSource
from ..audio.encoder import FFmpegEncoder
from ..audio.level_meter import LevelMeter
from ..audio.spectrum import SpectrumAnalyzer
from ..audio.waveform import WaveformAnalyzer
from ..config import AudioSettings
from ..exceptions import EncodingFailed, GapDetected
from ..models.events import GapEvent, StateChangeEvent
from ..models.session import RecordingState, SessionOutcome
from ..models.ui import RecordingStatus
from .pipeline import AudioPipeline

logger = logging.getLogger(__name__)

SourceFactory = Callable[[AudioSettings, Callable, Callable], Any]

DEFAULT_COLUMNS = 80


class RecordingStateMachine:
    """Owns one recording session from Idle to a terminal state.

    Every transition that moves the commit boundary reads the source's next
    sequence number while holding the source's sequence lock, so the boundary
    falls exactly between two chunks no matter how far the processing thread
    lags behind capture.
    """

    def __init__(
        self,
        settings: Union[AudioSettings, Mapping[str, Any]],
        encoder: Optional[FFmpegEncoder] = None,
        source_factory: Optional[SourceFactory] = None,
        publisher: Optional[EventPublisher] = None,
        session_id: Optional[str] = None,
        run_pipeline_thread: bool = True,
        columns: int = DEFAULT_COLUMNS,
    ):
        """Initialize the state machine.

        Args:
            settings: Audio settings; raw mappings are validated (raises ConfigInvalid)
            encoder: Encoding collaborator called with the finalized recording
            source_factory: Builds the sample source (defaults to SampleSource.from_settings)
            publisher: Publisher for state change events
            session_id: Identifier used in events and logs
            run_pipeline_thread: Process audio on a background thread; when False
                                 the caller drives ``pipeline.process_pending()``
            columns: Initial analyzer width in display columns
        """
        if not isinstance(settings, AudioSettings):
            settings = AudioSettings.from_mapping(dict(settings))
        self.settings = settings
        self.encoder = encoder
        self.source_factory = source_factory or SampleSource.from_settings
        self.publisher = publisher or EventPublisher(STATE_TOPIC)
        self.gap_publisher = EventPublisher(GAP_TOPIC)
        self.session_id = session_id or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.run_pipeline_thread = run_pipeline_thread
        self.columns = columns

        self._lock = threading.RLock()
        self._state = RecordingState.IDLE
        self._outcome: Optional[SessionOutcome] = None

        self.source = None
        self.buffer: Optional[RingBuffer] = None
        self.pipeline: Optional[AudioPipeline] = None
        self.assembler: Optional[RecordingAssembler] = None
        self.error: Optional[Exception] = None

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    @property
    def outcome(self) -> Optional[SessionOutcome]:
        return self._outcome

    def _transition(self, new_state: RecordingState, boundary: Optional[int] = None,
                    reason: str = "") -> StateChangeEvent:
        """Change state. Caller holds the lock and publishes the returned event."""
        previous = self._state
        self._state = new_state
        logger.info(f"Session {self.session_id}: {previous.value} -> {new_state.value}"
                    + (f" at chunk {boundary}" if boundary is not None else "")
                    + (f" ({reason})" if reason else ""))
        return StateChangeEvent(
            session_id=self.session_id,
            previous=previous,
            current=new_state,
            boundary_sequence=boundary,
            reason=reason,
        )

    def _publish(self, event: StateChangeEvent) -> None:
        try:
            self.publisher.publish(event)
        except Exception as e:
            logger.error(f"State change listener failed: {e}", exc_info=True)

    def _create_analyzer(self, sample_rate: int):
        if self.settings.visualization == "waveform":
            return WaveformAnalyzer(sample_rate, columns=self.columns)
        return SpectrumAnalyzer(
            sample_rate,
            num_buckets=self.columns,
            reference_level_db=self.settings.reference_level_db,
            peak_volume_threshold=self.settings.peak_volume_threshold,
            silence_floor_db=self.settings.silence_floor_db,
        )

    def _on_gap(self, gap: GapDetected) -> None:
        self.gap_publisher.publish(GapEvent(
            consumer=gap.consumer,
            expected_sequence=gap.expected_sequence,
            resumed_sequence=gap.oldest_sequence,
            missed_chunks=gap.missed_chunks,
        ))

    def start(self) -> bool:
        """Open the device and begin recording.

        Raises:
            DeviceUnavailable: Device missing or cannot be opened
            FormatUnsupported: Sample rate/channel negotiation failed
        """
        with self._lock:
            if self._state != RecordingState.IDLE:
                logger.warning(f"Cannot start from state {self._state.value}")
                return False

            buffer = RingBuffer(self.settings.buffer_capacity, on_gap=self._on_gap)
            source = self.source_factory(self.settings, buffer.append, self._on_device_error)
            source.start()

            self.buffer = buffer
            self.source = source
            self.assembler = RecordingAssembler(source.sample_rate, source.channels)
            level_meter = LevelMeter(self.settings.reference_level_db, self.settings.silence_floor_db)
            self.pipeline = AudioPipeline(buffer, level_meter,
                                          self._create_analyzer(source.sample_rate),
                                          self.assembler)

            # Everything captured since the stream opened belongs to the recording
            self.assembler.open_interval(0)
            if self.run_pipeline_thread:
                self.pipeline.start()
            event = self._transition(RecordingState.RECORDING, 0, "start")

        self._publish(event)
        return True

    def pause(self) -> bool:
        """Stop committing audio; capture and analysis keep running."""
        with self._lock:
            if self._state != RecordingState.RECORDING:
                logger.debug(f"Ignoring pause in state {self._state.value}")
                return False
            with self.source.sequence_lock:
                boundary = self.source.next_sequence
                self.assembler.close_interval(boundary)
            event = self._transition(RecordingState.PAUSED, boundary, "pause")
        self._publish(event)
        return True

    def resume(self) -> bool:
        """Commit again starting with the next captured chunk."""
        with self._lock:
            if self._state != RecordingState.PAUSED:
                logger.debug(f"Ignoring resume in state {self._state.value}")
                return False
            with self.source.sequence_lock:
                boundary = self.source.next_sequence
                self.assembler.open_interval(boundary)
            event = self._transition(RecordingState.RECORDING, boundary, "resume")
        self._publish(event)
        return True

    def toggle_pause(self) -> bool:
        # pause/resume take the lock themselves and publish after releasing it
        with self._lock:
            paused = self._state == RecordingState.PAUSED
        return self.resume() if paused else self.pause()

    def stop(self) -> Optional[SessionOutcome]:
        """Finalize the recording and hand it to the encoder.

        Returns:
            The session outcome, or None if there was no session to stop
        """
        with self._lock:
            if self._state.is_terminal:
                logger.debug(f"Ignoring stop in terminal state {self._state.value}")
                return self._outcome
            if not self._state.is_active:
                logger.warning(f"Cannot stop from state {self._state.value}")
                return None
            with self.source.sequence_lock:
                boundary = self.source.next_sequence
                if self._state == RecordingState.RECORDING:
                    self.assembler.close_interval(boundary)
            event = self._transition(RecordingState.FINALIZING, boundary, "stop")
        self._publish(event)

        self.source.stop()
        self.pipeline.stop(drain=True)
        recording = self.assembler.finalize()

        output_path = None
        error = None
        if recording.is_empty:
            logger.warning("Recording stopped with no committed audio, skipping encoder")
        elif self.encoder is not None:
            try:
                output_path = self.encoder.encode(recording)
            except EncodingFailed as e:
                logger.error(f"Failed to encode recording: {e}")
                error = e

        with self._lock:
            self.error = error
            self._outcome = SessionOutcome(
                session_id=self.session_id,
                state=RecordingState.COMPLETED,
                recording=recording,
                output_path=output_path,
                error=error,
            )
            event = self._transition(RecordingState.COMPLETED,
                                     reason="encoding failed" if error else "finalized")
        self._publish(event)
        return self._outcome

    def cancel(self) -> bool:
        """Discard the session. A no-op once the session has ended."""
        with self._lock:
            if self._state.is_terminal:
                logger.debug(f"Ignoring cancel in terminal state {self._state.value}")
                return False
            if self._state == RecordingState.FINALIZING:
                logger.warning("Cannot cancel while finalizing")
                return False
            event = self._transition(RecordingState.CANCELLED, reason="cancelled by user")
            self._outcome = SessionOutcome(self.session_id, RecordingState.CANCELLED)

        self._teardown()
        self._publish(event)
        return True

    def _on_device_error(self, error: Exception) -> None:
        """Called from the capture thread when the device fails mid-session."""
        with self._lock:
            if not self._state.is_active:
                logger.debug(f"Device error in state {self._state.value} ignored: {error}")
                return
            logger.error(f"Session {self.session_id} lost its input device: {error}")
            self.error = error
            event = self._transition(RecordingState.CANCELLED, reason=str(error))
            self._outcome = SessionOutcome(self.session_id, RecordingState.CANCELLED, error=error)

        self._teardown()
        self._publish(event)

    def _teardown(self) -> None:
        """Release the device and drop all committed audio."""
        if self.source is not None:
            self.source.stop()
        if self.pipeline is not None:
            self.pipeline.stop(drain=False)
        if self.assembler is not None:
            self.assembler.discard()

    def status(self) -> RecordingStatus:
        """Snapshot of the session for the footer."""
        if self.assembler is None:
            return RecordingStatus(state=self._state)
        return RecordingStatus(
            state=self._state,
            committed_seconds=self.assembler.committed_seconds,
            committed_chunks=self.assembler.committed_chunks,
            captured_chunks=self.source.total_chunks,
            dropped_chunks=self.buffer.dropped_chunks,
            gap_count=self.pipeline.gap_count,
        )

