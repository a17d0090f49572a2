"""Display formatting helpers."""


def format_duration(seconds: int) -> str:
    """Format seconds as ``m:ss``, or ``h:mm:ss`` from one hour on."""
    seconds = max(0, int(seconds))
    hrs, rest = divmod(seconds, 3600)
    mins, secs = divmod(rest, 60)
    if hrs > 0:
        return f"{hrs}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
