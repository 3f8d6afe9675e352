"""Microphone capture running in a background thread."""

import time
import logging
from threading import Thread, Event, Lock, current_thread
from typing import Callable, Optional

import pyaudio

from ..exceptions import DeviceLost, DeviceUnavailable, FormatUnsupported
from ..models.audio import SampleChunk
from .devices import InputDevice, resolve_input_device

logger = logging.getLogger(__name__)


class SampleSource:
    """Continuous audio capture delivering numbered SampleChunks to a callback."""

    def __init__(
        self,
        callback: Callable[[SampleChunk], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        device: str = "default",
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
    ):
        """Initialize sample source.

        Args:
            callback: Receives every captured chunk, on the capture thread
            on_error: Receives DeviceLost if the stream fails mid-session
            device: "default", an input-device index, or a device name
            sample_rate: Requested sample rate in Hz
            chunk_size: Frames per hardware read
            channels: Number of input channels
            format: PyAudio sample format (16-bit signed int)
        """
        self.chunk_callback = callback
        self.on_error = on_error
        self.device = device
        self.requested_sample_rate = sample_rate
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format

        self.capture_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_running = False
        self.device_info: Optional[InputDevice] = None

        # Held while a chunk is numbered and delivered
        self.sequence_lock = Lock()
        self._next_sequence = 0

        self.total_chunks = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    @classmethod
    def from_settings(cls, settings, callback, on_error=None) -> "SampleSource":
        return cls(
            callback=callback,
            on_error=on_error,
            device=settings.device,
            sample_rate=settings.sample_rate,
            chunk_size=settings.chunk_size,
            channels=settings.channels,
        )

    @property
    def next_sequence(self) -> int:
        """Sequence number the next captured chunk will carry.

        Callers that need a boundary consistent with delivery should read this
        while holding ``sequence_lock``.
        """
        return self._next_sequence

    def _negotiate_format(self, device: InputDevice) -> int:
        """Pick a sample rate the device accepts, preferring the requested one."""
        candidates = [self.requested_sample_rate]
        if device.default_sample_rate and device.default_sample_rate != self.requested_sample_rate:
            candidates.append(device.default_sample_rate)

        for rate in candidates:
            try:
                self.pyaudio_instance.is_format_supported(
                    rate,
                    input_device=device.index,
                    input_channels=self.channels,
                    input_format=self.format,
                )
            except ValueError as e:
                logger.debug(f"{device.name} rejected {rate}Hz/{self.channels}ch: {e}")
                continue
            if rate != self.requested_sample_rate:
                logger.warning(f"{device.name} does not support {self.requested_sample_rate}Hz, "
                               f"recording at native {rate}Hz")
            return rate

        raise FormatUnsupported(
            f"Device '{device.name}' does not support {self.requested_sample_rate}Hz "
            f"with {self.channels} channel(s)"
        )

    def _open_audio_stream(self) -> None:
        self.pyaudio_instance = pyaudio.PyAudio()
        self.device_info = resolve_input_device(self.pyaudio_instance, self.device)
        if self.channels > self.device_info.max_input_channels > 0:
            raise FormatUnsupported(
                f"Device '{self.device_info.name}' has {self.device_info.max_input_channels} "
                f"input channel(s), {self.channels} requested"
            )
        self.sample_rate = self._negotiate_format(self.device_info)

        try:
            self.stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.device_info.index,
                frames_per_buffer=self.chunk_size,
                stream_callback=None,
            )
        except OSError as e:
            raise DeviceUnavailable(f"Could not open '{self.device_info.name}': {e}") from e

        logger.info(f"Audio stream opened on '{self.device_info.name}': {self.sample_rate}Hz, "
                    f"{self.channels}ch, {self.chunk_size} samples/chunk")

    def start(self) -> None:
        """Open the device and start capturing in a background thread.

        Raises:
            DeviceUnavailable: Device missing or cannot be opened
            FormatUnsupported: Sample rate/channel negotiation failed
        """
        if self.is_running:
            logger.warning("Capture already in progress")
            return

        logger.info(f"Starting audio capture on device '{self.device}'")
        try:
            self._open_audio_stream()
        except Exception:
            self._release()
            raise

        self.stop_event.clear()
        self.total_chunks = 0
        with self.sequence_lock:
            self._next_sequence = 0

        self.capture_thread = Thread(target=self._capture_continuously, daemon=True)
        self.capture_thread.name = "SampleSourceThread"
        self.is_running = True
        self.capture_thread.start()

    def stop(self) -> None:
        """Stop capturing and release the device."""
        if not self.is_running:
            return

        logger.info("Stopping audio capture")
        self.stop_event.set()

        # The device-error path may call stop() from the capture thread itself
        thread = self.capture_thread
        if thread and thread.is_alive() and thread is not current_thread():
            thread.join(timeout=2.0)
            if thread.is_alive():
                logger.warning("Capture thread did not stop cleanly")

        self.is_running = False
        logger.info(f"Capture stopped. Total chunks: {self.total_chunks}")

    def _read_chunk(self) -> bytes:
        return self.stream.read(self.chunk_size, exception_on_overflow=False)

    def _deliver(self, data: bytes) -> None:
        with self.sequence_lock:
            chunk = SampleChunk(
                data=data,
                sequence_number=self._next_sequence,
                timestamp=time.time(),
                sample_rate=self.sample_rate,
                channels=self.channels,
            )
            self._next_sequence += 1
            self.total_chunks += 1
            self.chunk_callback(chunk)

    def _capture_continuously(self) -> None:
        """Capture loop run on the background thread."""
        try:
            while not self.stop_event.is_set():
                try:
                    data = self._read_chunk()
                except OSError as e:
                    if self.stop_event.is_set():
                        break
                    logger.error(f"Audio device failed after {self.total_chunks} chunks: {e}")
                    self.stop_event.set()
                    if self.on_error:
                        self.on_error(DeviceLost(f"Audio input device lost: {e}"))
                    break
                self._deliver(data)
        finally:
            self._release()
            self.is_running = False

    def _release(self) -> None:
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except OSError as e:
                logger.debug(f"Error closing stream: {e}")
            self.stream = None
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def __del__(self):
        if self.is_running:
            self.stop()
