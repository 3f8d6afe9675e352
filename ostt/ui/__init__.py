"""Terminal user interface."""

from .keyboard_input import KeyEvent, TerminalInput, normalize_key
from .recording_screen import VisualizationRenderer, render_error, show_error

__all__ = [
    'KeyEvent',
    'TerminalInput',
    'normalize_key',
    'VisualizationRenderer',
    'render_error',
    'show_error',
]
