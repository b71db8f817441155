import re

from models.schemas import DEFAULT_BITRATE, SUPPORTED_BITRATES, ConversionRequest
from services.timecode import parse_timestamp

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")


class InvalidIdentifier(Exception):
    pass


def is_valid_video_id(video_id: str | None) -> bool:
    return bool(video_id) and VIDEO_ID_PATTERN.match(video_id) is not None


def parse_bitrate(value: str | None) -> int:
    """Anything that isn't a supported bitrate falls back to the default."""
    try:
        bitrate = int((value or "").strip())
    except ValueError:
        return DEFAULT_BITRATE
    return bitrate if bitrate in SUPPORTED_BITRATES else DEFAULT_BITRATE


def build_conversion_request(
    video_id: str | None,
    bitrate: str | None = None,
    start: str | None = None,
    end: str | None = None,
) -> ConversionRequest:
    """
    Normalize raw query parameters into a ConversionRequest.

    Only the identifier can fail validation. Bad bitrates and bad or
    inverted trim bounds are quietly dropped.
    """
    video_id = (video_id or "").strip()
    if not is_valid_video_id(video_id):
        raise InvalidIdentifier("Invalid or missing video id")

    start_sec = parse_timestamp(start)
    end_sec = parse_timestamp(end)
    if start_sec is not None and end_sec is not None and end_sec <= start_sec:
        end_sec = None

    return ConversionRequest(
        video_id=video_id,
        bitrate=parse_bitrate(bitrate),
        start=start_sec,
        end=end_sec,
    )
