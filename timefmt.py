"""Duration formatting and timestamp parsing shared by the track source and commands."""

import re

_FIELD = re.compile(r"^\d+$")


def format_duration(seconds: int) -> str:
    """Format seconds as MM:SS or HH:MM:SS."""
    if seconds <= 0:
        return "Live"
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_timestamp(label: str) -> int | None:
    """
    Parse a MM:SS or HH:MM:SS label into a second count.

    The leading field is unbounded; the fields after it must be below 60.

    Returns:
        Total seconds, or None if the label is malformed
    """
    parts = label.strip().split(":")
    if len(parts) not in (2, 3) or not all(_FIELD.match(p) for p in parts):
        return None

    values = [int(p) for p in parts]
    if any(v >= 60 for v in values[1:]):
        return None

    total = 0
    for value in values:
        total = total * 60 + value
    return total
