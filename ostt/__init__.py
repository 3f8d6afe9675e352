"""ostt - terminal audio recorder with live spectrum and waveform display."""

__version__ = "0.1.0"
