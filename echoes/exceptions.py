"""Exception types raised across Echoes."""


class ParameterError(ValueError):
    """Session parameters are missing or inconsistent."""


class AcquisitionError(RuntimeError):
    """An audio source could not be acquired.

    Wraps authorization denials, missing devices and platform rejections so the
    capture session only has to handle a single failure type.
    """


class RecordingNotFoundError(KeyError):
    """No recording exists for the given id."""

    def __str__(self):
        return f"Recording not found: {self.args[0]}" if self.args else "Recording not found"


class TranscriptionError(RuntimeError):
    """The transcription service was unreachable or rejected a request."""
