"""Error taxonomy for the recording core."""

from typing import Optional


class OsttError(Exception):
    """Base class for all ostt errors."""


class ConfigInvalid(OsttError):
    """Raised when configuration values are missing or out of range."""


class DeviceUnavailable(OsttError):
    """Raised when the requested input device cannot be found or opened."""


class FormatUnsupported(OsttError):
    """Raised when sample rate or channel negotiation with the device fails."""


class DeviceLost(OsttError):
    """Raised when the input device fails while a session is in progress."""


class GapDetected(OsttError):
    """Raised when a buffer consumer falls behind the retained window."""

    def __init__(self, consumer: str, expected_sequence: int, oldest_sequence: int):
        self.consumer = consumer
        self.expected_sequence = expected_sequence
        self.oldest_sequence = oldest_sequence
        self.missed_chunks = oldest_sequence - expected_sequence
        super().__init__(
            f"Consumer '{consumer}' fell behind: expected chunk {expected_sequence}, "
            f"oldest retained is {oldest_sequence} ({self.missed_chunks} missed)"
        )


class EncodingFailed(OsttError):
    """Raised when the external encoder cannot produce an output file."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        self.stderr = stderr
        super().__init__(message)
