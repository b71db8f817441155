import re
from datetime import datetime, timezone

_DIGITS = re.compile(r"^\d+$")
_UPLOAD_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def parse_timestamp(value: str | None) -> int | None:
    """
    Parse "90", "1:30" or "1:02:03" into seconds.

    Returns None for empty or malformed input instead of raising, callers
    treat that as "not provided".
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    parts = value.split(":")
    if len(parts) > 3 or not all(_DIGITS.match(p) for p in parts):
        return None

    seconds = 0
    for part in parts:
        seconds = seconds * 60 + int(part)
    return seconds


def format_duration(seconds: float | None) -> str | None:
    """Render seconds as "m:ss" or "h:mm:ss"."""
    if seconds is None:
        return None
    mins, secs = divmod(int(seconds), 60)
    hrs, mins = divmod(mins, 60)
    if hrs:
        return f"{hrs}:{mins:02}:{secs:02}"
    return f"{mins}:{secs:02}"


def format_upload_date(upload_date: str | None, timestamp: float | None = None) -> str | None:
    """Render yt-dlp's "YYYYMMDD" upload_date (or a unix timestamp) as "YYYY-MM-DD"."""
    match = _UPLOAD_DATE.match(upload_date or "")
    if match:
        return "-".join(match.groups())
    if timestamp is not None:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")
    return None
