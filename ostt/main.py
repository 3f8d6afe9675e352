"""Main application entry point for ostt."""

import sys
import signal
import argparse
import logging
import threading
from logging.handlers import TimedRotatingFileHandler
from typing import List, Optional

import pyaudio
from rich.console import Console
from rich.table import Table

from . import __version__
from .audio.devices import find_default_device, list_input_devices
from .audio.encoder import FFmpegEncoder
from .config import OsttConfig
from .exceptions import ConfigInvalid, DeviceUnavailable, FormatUnsupported
from .models.session import RecordingState, SessionOutcome
from .services.recording_service import RecordingStateMachine
from .ui.keyboard_input import TerminalInput
from .ui.recording_screen import VisualizationRenderer, show_error

logger = logging.getLogger(__name__)


def setup_logging(config: OsttConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get_log_file_path()
    console_output = config.get('logging.console_output', False)

    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file, rotated daily
    file_handler = TimedRotatingFileHandler(log_file_path, when="midnight", backupCount=7,
                                            encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - off by default, it would corrupt the full-screen display
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info(f"ostt {__version__} starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def install_stop_signal(stop_event: threading.Event) -> None:
    """Let `kill -USR1 <pid>` stop the recording like pressing Enter."""
    if not hasattr(signal, "SIGUSR1"):
        return

    def _handle(signum, frame):
        logger.info("SIGUSR1 received, stopping recording")
        stop_event.set()

    signal.signal(signal.SIGUSR1, _handle)


def list_devices(console: Console) -> int:
    """Print the available input devices."""
    pa = pyaudio.PyAudio()
    try:
        devices = list_input_devices(pa)
    finally:
        pa.terminate()

    if not devices:
        show_error(console, "No audio input devices found")
        return 1

    default = find_default_device(devices)
    caption = f"Default: {default.name}" if default else "No default input device"
    table = Table(title="Audio input devices", caption=caption, show_header=True,
                  header_style="bold magenta")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Name", style="white")
    table.add_column("Channels", justify="right")
    table.add_column("Sample rate", justify="right")
    table.add_column("Default", justify="center")
    for device in devices:
        table.add_row(
            str(device.position),
            device.name,
            str(device.max_input_channels),
            f"{device.default_sample_rate} Hz",
            "*" if device is default else "",
        )
    console.print(table)
    return 0


def report_outcome(outcome: Optional[SessionOutcome], console: Console) -> int:
    """Show the session result and return the process exit code."""
    if outcome is None:
        logger.error("Recording screen exited without a finished session")
        return 1

    if outcome.state == RecordingState.CANCELLED:
        if outcome.error is not None:
            show_error(console, str(outcome.error))
            return 1
        logger.info("Recording cancelled")
        return 0

    if outcome.error is not None:
        show_error(console, str(outcome.error))
        return 1

    if outcome.output_path is not None:
        # Plain stdout so the path can be captured by scripts
        print(outcome.output_path)
    else:
        logger.warning("Nothing was recorded")
    return 0


def record(config: OsttConfig, console: Console) -> int:
    """Run one interactive recording session."""
    try:
        settings = config.get_audio_settings()
    except ConfigInvalid as e:
        show_error(console, str(e))
        return 1

    logger.info(f"Audio settings: device={settings.device}, {settings.sample_rate}Hz, "
                f"{settings.channels}ch, {settings.chunk_size} samples/chunk, "
                f"format '{settings.output_format}', {settings.visualization}")

    encoder = FFmpegEncoder(settings.output_format, config.get_output_directory())
    machine = RecordingStateMachine(settings, encoder=encoder, columns=console.size.width)

    stop_event = threading.Event()
    install_stop_signal(stop_event)

    try:
        machine.start()
    except (DeviceUnavailable, FormatUnsupported) as e:
        logger.error(f"Could not start recording: {e}")
        show_error(console, str(e))
        return 1

    try:
        with TerminalInput() as keys:
            renderer = VisualizationRenderer(
                machine,
                keys,
                console=console,
                frame_rate=settings.frame_rate,
                visualization=settings.visualization,
                peak_volume_threshold=settings.peak_volume_threshold,
                reference_level_db=settings.reference_level_db,
                external_stop=stop_event,
            )
            outcome = renderer.run()
    finally:
        # Never leave the device open, whatever ended the loop
        machine.cancel()

    return report_outcome(outcome, console)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ostt",
        description="ostt - record from the microphone with a live spectrum display",
        epilog="Keys while recording: Enter=stop, Space=pause/resume, Esc/q=cancel",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: ~/.config/ostt/ostt.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--device",
        type=str,
        help="Input device: 'default', an index from list-devices, or a device name"
    )

    parser.add_argument(
        "--visualization",
        choices=["spectrum", "waveform"],
        help="Visualization to show while recording (overrides config)"
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        help="Directory for the encoded recording (overrides config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"ostt v{__version__}"
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("record", help="Record audio (default)")
    subparsers.add_parser("list-devices", help="List audio input devices")
    return parser


def run(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    """Parse arguments and run the requested command. Returns the exit code."""
    args = build_parser().parse_args(argv)
    console = console or Console()

    try:
        config = OsttConfig(args.config)
    except (FileNotFoundError, ValueError) as e:
        show_error(console, str(e))
        return 1

    if args.device is not None:
        config.set('audio.device', args.device)
    if args.visualization is not None:
        config.set('audio.visualization', args.visualization)
    if args.output_dir is not None:
        config.set('output.directory', args.output_dir)

    setup_logging(config, args.log_level or config.get('logging.level') or 'INFO')

    if args.command == "list-devices":
        return list_devices(console)
    return record(config, console)


def main() -> None:
    """Main entry point for ostt."""
    try:
        code = run()
    except KeyboardInterrupt:
        code = 0
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
