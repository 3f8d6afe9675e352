"""Full-screen recording view: live visualization, meters and key handling."""

import logging
import threading
from typing import List, Optional, Sequence

from rich.align import Align
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from ..audio.level_meter import meter_percent
from ..models.audio import LevelSnapshot
from ..models.session import SessionOutcome
from ..models.ui import RecordingStatus
from .keyboard_input import KeyEvent

logger = logging.getLogger(__name__)

# Eighth-block characters, index = filled eighths of one cell
BLOCKS = " ▁▂▃▄▅▆▇█"
UPPER_HALF = "▀"

BAR_STYLE = "rgb(206,224,220) on black"
MIRROR_STYLE = "rgb(185,207,212) on black"
FOOTER_STYLE = "rgb(185,207,212) on black"
PEAK_ALERT_STYLE = "bold white on red"

PROGRESS_LOG_TICKS = 60


def bar_rows(values: Sequence[float], height: int) -> List[str]:
    """Render values in [0, 1] as vertical bars, top row first."""
    rows = []
    eighths = [int(round(max(0.0, min(1.0, v)) * height * 8)) for v in values]
    for row in range(height - 1, -1, -1):
        line = []
        for filled in eighths:
            cell = filled - row * 8
            line.append(BLOCKS[max(0, min(8, cell))])
        rows.append("".join(line))
    return rows


def mirrored_rows(values: Sequence[float], height: int) -> List[str]:
    """Render values as bars hanging down from the top row (lower half of a waveform)."""
    rows = []
    eighths = [int(round(max(0.0, min(1.0, v)) * height * 8)) for v in values]
    for row in range(height):
        line = []
        for filled in eighths:
            cell = filled - row * 8
            if cell >= 8:
                line.append(BLOCKS[8])
            elif cell >= 4:
                line.append(UPPER_HALF)
            else:
                line.append(" ")
        rows.append("".join(line))
    return rows


def format_duration(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def render_error(message: str) -> Panel:
    """Full-width red panel used for startup and device errors."""
    return Panel(
        Align.center(Text(message, style="bold white on red", justify="center"), vertical="middle"),
        title="ostt",
        style="white on red",
        border_style="white on red",
        padding=(1, 2),
    )


def show_error(console: Console, message: str) -> None:
    console.print(render_error(message))


class VisualizationRenderer:
    """Cooperative render loop driving the recording session from the keyboard.

    Each tick waits up to one frame interval for a key, forwards it to the
    state machine, then draws the newest level snapshot and analyzer frame.
    When the pipeline has produced nothing new the previous values are drawn
    again, so a slow analyzer never stalls the display.
    """

    def __init__(
        self,
        state_machine,
        input_source,
        console: Optional[Console] = None,
        frame_rate: int = 25,
        visualization: str = "spectrum",
        peak_volume_threshold: int = 90,
        reference_level_db: float = -20.0,
        external_stop: Optional[threading.Event] = None,
    ):
        """Initialize renderer.

        Args:
            state_machine: Started RecordingStateMachine
            input_source: Object with ``poll(timeout) -> Optional[KeyEvent]``
            console: Rich console to draw on
            frame_rate: Target redraws per second
            visualization: "spectrum" or "waveform"
            peak_volume_threshold: Peak percent drawn in red
            reference_level_db: dBFS shown as 100% on the meters
            external_stop: Set from outside (e.g. a signal handler) to stop like Enter
        """
        self.state_machine = state_machine
        self.input_source = input_source
        self.console = console or Console()
        self.tick_interval = 1.0 / frame_rate
        self.visualization = visualization
        self.peak_volume_threshold = peak_volume_threshold
        self.reference_level_db = reference_level_db
        self.external_stop = external_stop or threading.Event()

        self.ticks = 0
        self.stale_ticks = 0
        self._level_version = 0
        self._frame_version = 0
        self._level: Optional[LevelSnapshot] = None
        self._values: Sequence[float] = ()
        self._width = 0

    def handle_key(self, event: KeyEvent) -> None:
        logger.debug(f"Key event: {event.value}")
        if event == KeyEvent.ENTER:
            self.state_machine.stop()
        elif event == KeyEvent.SPACE:
            self.state_machine.toggle_pause()
        elif event == KeyEvent.CANCEL:
            self.state_machine.cancel()

    def _check_size(self) -> None:
        width = self.console.size.width
        if width != self._width:
            self._width = width
            pipeline = self.state_machine.pipeline
            if pipeline is not None:
                pipeline.resize(width)

    def _pull_latest(self) -> bool:
        """Take the newest pipeline results. Returns False if nothing changed."""
        pipeline = self.state_machine.pipeline
        if pipeline is None:
            return False
        level_version, level = pipeline.latest_level()
        frame_version, frame = pipeline.latest_frame()
        fresh = level_version != self._level_version or frame_version != self._frame_version
        self._level_version, self._level = level_version, level
        if frame is not None and frame_version != self._frame_version:
            self._values = frame.values
        self._frame_version = frame_version
        return fresh

    def tick(self) -> RenderableType:
        """Run one iteration: input, state update, and the frame to display."""
        self.ticks += 1

        if self.external_stop.is_set():
            self.external_stop.clear()
            logger.info("External stop requested")
            self.state_machine.stop()
        else:
            event = self.input_source.poll(self.tick_interval)
            if event is not None:
                self.handle_key(event)

        self._check_size()
        if not self._pull_latest():
            self.stale_ticks += 1

        if self.ticks % PROGRESS_LOG_TICKS == 0:
            status = self.state_machine.status()
            logger.debug(f"Tick {self.ticks}: {status.state.value}, "
                         f"{status.committed_seconds:.1f}s committed, "
                         f"{status.captured_chunks} captured, {self.stale_ticks} stale redraws")

        return self.render(self.state_machine.status())

    def meter_levels(self, status: RecordingStatus) -> tuple:
        """Current (volume %, peak %), both zero while paused or before any audio."""
        if status.is_paused or self._level is None:
            return 0, 0
        return (meter_percent(self._level.instantaneous_dbfs, self.reference_level_db),
                meter_percent(self._level.peak_dbfs_3s, self.reference_level_db))

    def render_footer(self, status: RecordingStatus) -> Text:
        volume, peak = self.meter_levels(status)
        indicator = ("⏸ ", "yellow") if status.is_paused else ("● ", "red")
        peak_style = PEAK_ALERT_STYLE if peak >= self.peak_volume_threshold else ""

        footer = Text.assemble(
            indicator,
            format_duration(status.committed_seconds),
            " / ",
            f"{volume}%",
            " / ",
            (f"{peak}%", peak_style),
            style=FOOTER_STYLE,
        )
        if self._level is not None and self._level.clipping and not status.is_paused:
            footer.append("  CLIP", style=PEAK_ALERT_STYLE)
        return footer

    def render_visualization(self, height: int) -> Text:
        width = self._width or self.console.size.width
        values = list(self._values)[-width:]
        if len(values) < width:
            values = [0.0] * (width - len(values)) + values

        text = Text()
        if self.visualization == "waveform":
            top_height = max(1, height * 2 // 3)
            rows = [(row, BAR_STYLE) for row in bar_rows(values, top_height)]
            rows += [(row, MIRROR_STYLE) for row in mirrored_rows(values, height - top_height)]
        else:
            rows = [(row, BAR_STYLE) for row in bar_rows(values, height)]

        for i, (row, style) in enumerate(rows):
            if i:
                text.append("\n")
            text.append(row, style=style)
        return text

    def render(self, status: RecordingStatus) -> RenderableType:
        height = max(1, self.console.size.height - 1)
        return Group(self.render_visualization(height), self.render_footer(status))

    def run(self) -> Optional[SessionOutcome]:
        """Draw until the session reaches a terminal state. Returns its outcome."""
        logger.info(f"Recording screen started ({self.visualization}, "
                    f"{1.0 / self.tick_interval:.0f} fps)")
        with Live(console=self.console, screen=True, auto_refresh=False, transient=True) as live:
            while not self.state_machine.is_terminal:
                try:
                    renderable = self.tick()
                except KeyboardInterrupt:
                    logger.info("Keyboard interrupt, cancelling session")
                    self.state_machine.cancel()
                    break
                live.update(renderable, refresh=True)
        logger.info(f"Recording screen closed after {self.ticks} ticks")
        return self.state_machine.outcome
