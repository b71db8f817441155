from .youtube import YouTubeService, SearchError, SourceUnavailable
from .validation import InvalidIdentifier, build_conversion_request
from .cover_art import CoverArtFetcher, CoverArtUnavailable
from .source_stream import SourceStream
from .transcode import EncodingError, TranscodeJob, TranscodeOptions
from .delivery import TranscodeStreamResponse, open_transcode_stream

__all__ = [
    "YouTubeService",
    "SearchError",
    "SourceUnavailable",
    "InvalidIdentifier",
    "build_conversion_request",
    "CoverArtFetcher",
    "CoverArtUnavailable",
    "SourceStream",
    "EncodingError",
    "TranscodeJob",
    "TranscodeOptions",
    "TranscodeStreamResponse",
    "open_transcode_stream",
]
