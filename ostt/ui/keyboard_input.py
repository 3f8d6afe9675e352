"""Non-blocking keyboard input for the recording screen."""

import os
import sys
import time
import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class KeyEvent(Enum):
    """Keystrokes the recording screen reacts to."""
    ENTER = "enter"    # stop and keep the recording
    SPACE = "space"    # toggle pause/resume
    CANCEL = "cancel"  # discard the recording


_KEY_MAP = {
    "\r": KeyEvent.ENTER,
    "\n": KeyEvent.ENTER,
    " ": KeyEvent.SPACE,
    "\x1b": KeyEvent.CANCEL,
    "q": KeyEvent.CANCEL,
    "Q": KeyEvent.CANCEL,
    "\x03": KeyEvent.CANCEL,
}


def normalize_key(raw: str) -> Optional[KeyEvent]:
    """Map raw terminal input to a KeyEvent.

    A lone ESC cancels, but longer escape sequences (arrow keys, function
    keys) are ignored. For other multi-character reads the first mapped
    key wins.
    """
    if not raw:
        return None
    if raw.startswith("\x1b"):
        return KeyEvent.CANCEL if raw == "\x1b" else None
    for char in raw:
        event = _KEY_MAP.get(char)
        if event is not None:
            return event
    return None


class TerminalInput:
    """Reads keys from the controlling terminal without echo or line buffering.

    Use as a context manager so the terminal mode is always restored.
    """

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self._fd: Optional[int] = None
        self._saved_settings = None
        self._windows = sys.platform == "win32"
        self._eof = False

    def __enter__(self) -> "TerminalInput":
        if self._windows or not self.stream.isatty():
            return self
        import termios
        import tty

        self._fd = self.stream.fileno()
        self._saved_settings = termios.tcgetattr(self._fd)
        tty.setcbreak(self._fd)
        logger.debug("Terminal switched to cbreak mode")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._saved_settings is not None:
            import termios

            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_settings)
            self._saved_settings = None
            logger.debug("Terminal settings restored")

    def poll(self, timeout: float) -> Optional[KeyEvent]:
        """Wait at most timeout seconds for a key. Returns None if nothing relevant arrived."""
        if self._windows:
            return self._poll_windows(timeout)
        return self._poll_unix(timeout)

    def _poll_unix(self, timeout: float) -> Optional[KeyEvent]:
        import select

        # A closed input stays readable forever, so wait out the timeout instead
        if self._eof:
            time.sleep(timeout)
            return None

        deadline = time.monotonic() + timeout
        ready, _, _ = select.select([self.stream], [], [], timeout)
        if not ready:
            return None
        # Read everything available so escape sequences arrive in one piece
        data = os.read(self.stream.fileno(), 32)
        if not data:
            logger.warning("Keyboard input closed, keys are no longer read")
            self._eof = True
            time.sleep(max(0.0, deadline - time.monotonic()))
            return None
        raw = data.decode("utf-8", errors="ignore")
        event = normalize_key(raw)
        logger.debug(f"Key input {raw!r} -> {event}")
        return event

    def _poll_windows(self, timeout: float) -> Optional[KeyEvent]:
        import msvcrt

        deadline = time.monotonic() + timeout
        while True:
            if msvcrt.kbhit():
                raw = msvcrt.getwch()
                # Extended keys arrive as a prefix followed by a scan code
                if raw in ("\x00", "\xe0"):
                    msvcrt.getwch()
                    return None
                return normalize_key(raw)
            if time.monotonic() >= deadline:
                return None
            time.sleep(0.01)
