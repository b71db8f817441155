import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from config import settings
from limiter import limiter
from models.schemas import ErrorResponse
from services.cover_art import CoverArtFetcher, CoverArtUnavailable
from services.delivery import open_transcode_stream
from services.filenames import mp3_filename
from services.source_stream import SourceStream
from services.transcode import EncodingError, TranscodeJob, TranscodeOptions
from services.validation import InvalidIdentifier, build_conversion_request
from services.youtube import SourceUnavailable, YouTubeService

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["convert"])

youtube = YouTubeService()
cover_art = CoverArtFetcher()


def source_unavailable(message: str) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail=ErrorResponse(
            error=message,
            code="SOURCE_UNAVAILABLE",
            retry_after=60,
        ).model_dump(),
    )


@router.get("/convert")
@limiter.limit(settings.rate_limit)
async def convert(
    request: Request,
    video_id: str | None = Query(None, alias="id", description="YouTube video ID"),
    bitrate: str | None = Query(None, description="128, 192, 256 or 320 (default 192)"),
    start: str | None = Query(None, description="Trim start: seconds, mm:ss or hh:mm:ss"),
    end: str | None = Query(None, description="Trim end: seconds, mm:ss or hh:mm:ss"),
):
    """
    Convert a video's audio track to MP3 and stream it as a download.

    Errors found before the first encoded byte come back as JSON. Once audio
    is flowing a failure can only cut the download short.
    """
    try:
        job_request = build_conversion_request(video_id, bitrate, start, end)
    except InvalidIdentifier as e:
        raise HTTPException(
            status_code=400,
            detail=ErrorResponse(error=str(e), code="INVALID_ID").model_dump(),
        )

    log = logger.bind(video_id=job_request.video_id, bitrate=job_request.bitrate)

    try:
        info = await run_in_threadpool(youtube.resolve, job_request.video_id)
    except SourceUnavailable as e:
        log.error("resolve_failed", error=str(e))
        raise source_unavailable("Could not load video")

    cover = None
    if info.cover_url:
        try:
            cover = await cover_art.fetch(info.cover_url)
        except CoverArtUnavailable as e:
            log.warning("cover_fetch_failed", error=str(e))

    try:
        source = await SourceStream.open(info)
    except SourceUnavailable as e:
        log.error("source_open_failed", error=str(e))
        raise source_unavailable("Could not open audio stream")

    job = TranscodeJob(TranscodeOptions.for_request(job_request, info, cover), source)
    filename = mp3_filename(info.title, job_request.bitrate, job_request.video_id)

    try:
        response = await open_transcode_stream(job, filename)
    except SourceUnavailable as e:
        log.error("source_failed", error=str(e))
        raise source_unavailable("Audio stream interrupted")
    except EncodingError as e:
        log.error("transcode_start_failed", error=str(e))
        raise HTTPException(
            status_code=500,
            detail=ErrorResponse(error="Transcoding failed", code="TRANSCODE_FAILED").model_dump(),
        )

    log.info(
        "convert_streaming",
        start=job_request.start,
        end=job_request.end,
        with_cover=cover is not None,
    )
    return response
