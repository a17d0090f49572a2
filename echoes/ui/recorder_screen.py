"""Terminal rendering of the recorder window and the recordings list."""

import logging
from datetime import datetime
from typing import List, Sequence

from rich.align import Align
from rich.console import Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.recording import Recording, TranscriptionStatus
from ..models.session import SessionStatus
from ..models.ui import RecorderView
from .formatting import format_duration, format_file_size


logger = logging.getLogger(__name__)

LEVEL_BAR_HEIGHT = 8

_STATUS_STYLES = {
    TranscriptionStatus.PENDING: "dim",
    TranscriptionStatus.PROCESSING: "yellow",
    TranscriptionStatus.COMPLETED: "green",
    TranscriptionStatus.ERROR: "red",
}


def render_level_bars(levels: Sequence[float], height: int = LEVEL_BAR_HEIGHT) -> Text:
    """Draw one vertical bar per band, each level in [0, 1]."""
    text = Text()
    for row in range(height, 0, -1):
        threshold = (row - 0.5) / height
        for level in levels:
            text.append("█ " if level >= threshold else "  ", style="red")
        text.append("\n")
    return text


def render_recorder(view: RecorderView) -> RenderableType:
    """Build the recorder panel for the current view."""
    if view.state == SessionStatus.STARTING:
        body: RenderableType = Text("Starting...", style="yellow italic")
        border = "yellow"

    elif view.state == SessionStatus.RECORDING:
        parts: List[RenderableType] = [
            Text.assemble(("● REC ", "bold red"), (view.elapsed_label, "bold white")),
        ]
        if view.levels:
            parts.append(render_level_bars(view.levels))
        parts.append(Text("Press Ctrl+C to stop recording", style="dim white italic"))
        body = Group(*parts)
        border = "red"

    elif view.error:
        body = Text(f"Error: {view.error}", style="bold red")
        border = "red"

    else:
        headline = "Recording saved!" if view.saved else "Nothing recorded"
        parts = [Text(headline, style="bold green" if view.saved else "bold yellow")]
        if "view_recordings" in view.actions:
            parts.append(Text("Run 'echoes list' to view recordings", style="dim white italic"))
        body = Group(*parts)
        border = "green"

    return Panel(Align.center(body), title="Echoes Recorder", border_style=border)


def render_recordings_table(recordings: Sequence[Recording]) -> Table:
    """Table of stored recordings, in the given order."""
    table = Table(title="Recordings", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Duration", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Created", style="dim")
    table.add_column("Transcript")

    for recording in recordings:
        created = datetime.fromtimestamp(recording.created_at / 1000)
        status = recording.transcription_status
        table.add_row(
            recording.id,
            recording.name,
            format_duration(recording.duration),
            format_file_size(recording.size),
            created.strftime("%Y-%m-%d %H:%M"),
            Text(status.value, style=_STATUS_STYLES.get(status, "white")),
        )

    return table


def render_recording_details(recording: Recording) -> Panel:
    """One recording with its stored transcript rendered as markdown."""
    created = datetime.fromtimestamp(recording.created_at / 1000)
    status = recording.transcription_status
    header = Text()
    header.append(f"{format_duration(recording.duration)}  ")
    header.append(f"{format_file_size(recording.size)}  ")
    header.append(f"{created.strftime('%Y-%m-%d %H:%M')}  ", style="dim")
    header.append(status.value, style=_STATUS_STYLES.get(status, "white"))

    if recording.transcription:
        body: RenderableType = Markdown(recording.transcription)
    else:
        body = Text("No transcript yet. Run 'echoes transcribe' first.", style="dim")

    return Panel(Group(header, Text(""), body), title=recording.name,
                 subtitle=recording.id, border_style="blue")
