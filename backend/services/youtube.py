import structlog
import yt_dlp

from config import settings
from models.schemas import Author, SearchResultItem, SourceInfo, Thumbnail
from services.filenames import sanitize
from services.timecode import format_duration, format_upload_date
from services.validation import is_valid_video_id

logger = structlog.get_logger()

# Reusable yt-dlp options
# Note: Don't use custom User-Agent for extraction - it can cause empty results
YDL_OPTS = {
    "format": "bestaudio/best",
    "quiet": True,
    "no_warnings": True,
    "noplaylist": True,
    "extract_flat": False,
    "geo_bypass": True,
    "socket_timeout": settings.socket_timeout,
    "skip_download": True,
}

# Options for search listing (flat = fast, no format resolution)
YDL_FLAT_OPTS = {
    "quiet": True,
    "no_warnings": True,
    "extract_flat": True,
    "geo_bypass": True,
    "socket_timeout": 8,
}

STREAMABLE_PROTOCOLS = {"http", "https"}


class SourceUnavailable(Exception):
    pass


class SearchError(Exception):
    pass


class YouTubeService:
    def search(self, query: str, limit: int | None = None) -> list[SearchResultItem]:
        """
        Search YouTube and return up to `limit` video results, best match first.
        Channels and playlists in the result set are skipped.
        """
        limit = limit or settings.search_limit
        search_query = f"ytsearch{limit}:{query}"

        with yt_dlp.YoutubeDL(YDL_FLAT_OPTS) as ydl:
            try:
                info = ydl.extract_info(search_query, download=False)
            except yt_dlp.utils.DownloadError as e:
                raise SearchError(f"yt-dlp failed: {str(e)}")

        if not info:
            return []

        # entries can be a generator, convert to list
        entries = list(info.get("entries") or [])
        return [self._parse_search_entry(e) for e in entries if e and is_valid_video_id(e.get("id"))]

    def resolve(self, video_id: str) -> SourceInfo:
        """Look up metadata and the best audio-only stream URL for a video ID."""
        url = f"https://www.youtube.com/watch?v={video_id}"

        with yt_dlp.YoutubeDL(YDL_OPTS) as ydl:
            try:
                info = ydl.extract_info(url, download=False)
            except yt_dlp.utils.DownloadError as e:
                raise SourceUnavailable(f"yt-dlp failed: {str(e)}")

        if not info:
            raise SourceUnavailable("Video not found")

        source = self._parse_entry(info)
        logger.info("source_resolved", video_id=video_id, has_cover=source.cover_url is not None)
        return source

    def _parse_entry(self, entry: dict) -> SourceInfo:
        """Parse yt-dlp info dict into SourceInfo."""
        best = self._best_audio_format(entry)
        if best is None:
            raise SourceUnavailable("No audio stream found")

        title = entry.get("title") or "Unknown"
        artist = (
            entry.get("artist")
            or entry.get("uploader")
            or entry.get("channel")
            or "Unknown Artist"
        )

        return SourceInfo(
            video_id=entry.get("id", ""),
            title=sanitize(title),
            artist=sanitize(artist),
            cover_url=self._cover_url(entry),
            stream_url=best["url"],
            http_headers=best.get("http_headers") or {"User-Agent": settings.user_agent},
            filesize=best.get("filesize"),
        )

    def _best_audio_format(self, entry: dict) -> dict | None:
        """Highest bitrate audio-only format that can be fetched over plain HTTP."""
        formats = entry.get("formats") or []
        audio_formats = [
            f
            for f in formats
            if f.get("url")
            and f.get("acodec") not in (None, "none")
            and f.get("vcodec") == "none"
            and f.get("protocol", "https") in STREAMABLE_PROTOCOLS
        ]

        if not audio_formats:
            # Fallback: the format yt-dlp selected itself (less reliable)
            if entry.get("url") and entry.get("protocol", "https") in STREAMABLE_PROTOCOLS:
                return entry
            return None

        return max(audio_formats, key=lambda f: f.get("abr") or f.get("tbr") or 0)

    def _cover_url(self, entry: dict) -> str | None:
        """Prefer the best JPEG thumbnail, webp covers don't embed everywhere."""
        thumbnails = [t for t in entry.get("thumbnails") or [] if t.get("url")]
        jpegs = [t for t in thumbnails if t["url"].split("?")[0].endswith(".jpg")]
        if jpegs:
            return jpegs[-1]["url"]
        if thumbnails:
            return thumbnails[-1]["url"]
        return entry.get("thumbnail")

    def _parse_search_entry(self, entry: dict) -> SearchResultItem:
        channel = entry.get("channel") or entry.get("uploader")
        author = None
        if channel:
            author = Author(
                name=channel,
                url=entry.get("channel_url") or entry.get("uploader_url"),
            )

        thumbnails = [
            Thumbnail(url=t["url"], width=t.get("width"), height=t.get("height"))
            for t in entry.get("thumbnails") or []
            if t.get("url")
        ]

        return SearchResultItem(
            id=entry["id"],
            title=entry.get("title") or "Unknown",
            duration=format_duration(entry.get("duration")),
            views=entry.get("view_count"),
            uploaded_at=format_upload_date(entry.get("upload_date"), entry.get("timestamp")),
            url=f"https://www.youtube.com/watch?v={entry['id']}",
            author=author,
            thumbnails=thumbnails,
        )
