from pydantic import BaseModel, ConfigDict

SUPPORTED_BITRATES = (128, 192, 256, 320)
DEFAULT_BITRATE = 192


class Thumbnail(BaseModel):
    url: str
    width: int | None = None
    height: int | None = None


class Author(BaseModel):
    name: str
    url: str | None = None


class SearchResultItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    duration: str | None  # "m:ss" or "h:mm:ss", None for live streams
    views: int | None = None
    uploaded_at: str | None = None  # "YYYY-MM-DD" when the provider reports it
    url: str
    author: Author | None = None
    thumbnails: list[Thumbnail]


class SearchResponse(BaseModel):
    items: list[SearchResultItem]


class ConversionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    video_id: str
    bitrate: int = DEFAULT_BITRATE
    start: int | None = None  # Seconds
    end: int | None = None  # Seconds, only honoured together with start

    @property
    def duration(self) -> int | None:
        """Length of the trim window, None when it is open-ended."""
        if self.start is None or self.end is None:
            return None
        return self.end - self.start


class SourceInfo(BaseModel):
    video_id: str
    title: str
    artist: str
    cover_url: str | None
    stream_url: str
    http_headers: dict[str, str] = {}
    filesize: int | None = None


class ErrorResponse(BaseModel):
    error: str
    code: str  # "INVALID_ID", "SOURCE_UNAVAILABLE", "TRANSCODE_FAILED", etc.
    retry_after: int | None = None  # Seconds to wait before retry


class HealthResponse(BaseModel):
    status: str
    ytdlp_version: str
    ffmpeg_version: str
