import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from config import settings
from limiter import limiter
from models.schemas import ErrorResponse, SearchResponse
from services.youtube import SearchError, YouTubeService

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["search"])

youtube = YouTubeService()


@router.get("/search", response_model=SearchResponse)
@limiter.limit(settings.rate_limit)
async def search(
    request: Request,
    q: str | None = Query(None, description="Search query"),
):
    """
    Search YouTube videos.

    Returns up to `search_limit` results, best match first. Pick one and
    pass its `id` to /api/convert.
    """
    query = (q or "").strip()
    if not query:
        raise HTTPException(
            status_code=400,
            detail=ErrorResponse(
                error="Missing query parameter q",
                code="MISSING_QUERY",
            ).model_dump(),
        )

    try:
        items = await run_in_threadpool(youtube.search, query)
    except SearchError as e:
        logger.error("search_failed", query=query, error=str(e))
        raise HTTPException(
            status_code=500,
            detail=ErrorResponse(
                error="Search failed",
                code="SEARCH_FAILED",
            ).model_dump(),
        )

    return SearchResponse(items=items)
