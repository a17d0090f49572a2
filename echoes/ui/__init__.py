"""User interface components for Echoes."""

from .formatting import format_duration, format_file_size
from .recorder_screen import render_recorder, render_recording_details, render_recordings_table

__all__ = ['format_duration', 'format_file_size', 'render_recorder', 'render_recording_details',
           'render_recordings_table']
