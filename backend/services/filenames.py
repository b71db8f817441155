import re
from urllib.parse import quote

# Characters that are illegal in file names on common filesystems or that
# would break a quoted header value.
_ILLEGAL = re.compile(r'[/?<>\\:*|"]')
_CONTROL = re.compile(r"[\x00-\x1f\x80-\x9f]")
_RESERVED = re.compile(r"^\.+$")
_WINDOWS_RESERVED = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)
_WINDOWS_TRAILING = re.compile(r"[. ]+$")

MAX_FILENAME_BYTES = 255


def sanitize(name: str, replacement: str = "") -> str:
    """Strip characters that are unsafe in a file name or header value."""
    cleaned = _ILLEGAL.sub(replacement, name)
    cleaned = _CONTROL.sub(replacement, cleaned)
    cleaned = _RESERVED.sub(replacement, cleaned)
    cleaned = _WINDOWS_RESERVED.sub(replacement, cleaned)
    cleaned = _WINDOWS_TRAILING.sub(replacement, cleaned)
    return _truncate(cleaned, MAX_FILENAME_BYTES)


def _truncate(value: str, max_bytes: int) -> str:
    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value
    return encoded[:max_bytes].decode("utf-8", "ignore")


def mp3_filename(title: str, bitrate: int, video_id: str) -> str:
    """Download name like "Song (192kbps).mp3", never losing the suffix to truncation."""
    suffix = f" ({bitrate}kbps).mp3"
    stem = sanitize(title).strip()
    if not stem:
        return f"audio-{video_id}.mp3"
    stem = _truncate(stem, MAX_FILENAME_BYTES - len(suffix.encode("utf-8"))).rstrip()
    return f"{stem}{suffix}"


def content_disposition(filename: str) -> str:
    """
    Build an attachment Content-Disposition header.

    Header values go out as latin-1, so names outside it get an ASCII
    fallback plus an RFC 5987 encoded filename*.
    """
    try:
        filename.encode("latin-1")
    except UnicodeEncodeError:
        fallback = filename.encode("ascii", "ignore").decode("ascii").strip() or "audio.mp3"
        encoded = quote(filename)
        return f"attachment; filename=\"{fallback}\"; filename*=utf-8''{encoded}"
    return f'attachment; filename="{filename}"'
