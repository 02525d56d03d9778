"""Text processing utilities."""

import re

_HEADER_LINE = re.compile(r"^#[^\n]*\n*", re.MULTILINE)


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to a maximum length with suffix.

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Suffix to add when truncating

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text

    return text[: max_length - len(suffix)] + suffix


def format_duration(seconds: float) -> str:
    """
    Format seconds as a M:SS duration string.

    Minutes are not wrapped into hours, so 2 hours reads as 120:00.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration
    """
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def timestamp_to_seconds(timestamp: str) -> float | None:
    """
    Convert HH:MM:SS(.mmm) or MM:SS(.mmm) into seconds.

    SRT-style comma decimals are accepted.

    Args:
        timestamp: Timestamp string

    Returns:
        Seconds, or None if the string is not a timestamp
    """
    parts = timestamp.strip().replace(",", ".").split(":")
    try:
        if len(parts) == 3:
            return int(parts[0]) * 3600 + int(parts[1]) * 60 + float(parts[2])
        if len(parts) == 2:
            return int(parts[0]) * 60 + float(parts[1])
    except ValueError:
        return None
    return None


def strip_markdown_headers(text: str) -> str:
    """Remove markdown header lines (and blank lines after them)."""
    return _HEADER_LINE.sub("", text).strip()
