import subprocess

from fastapi import APIRouter
from yt_dlp.version import __version__ as ytdlp_version

from config import settings
from models.schemas import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


def ffmpeg_version() -> str:
    try:
        result = subprocess.run(
            [settings.ffmpeg_binary, "-version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return "unknown"

    # "ffmpeg version 6.1.1 Copyright ..."
    parts = result.stdout.split()
    if result.returncode != 0 or len(parts) < 3:
        return "unknown"
    return parts[2]


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness probe, also reports the collaborator versions."""
    return HealthResponse(
        status="healthy",
        ytdlp_version=ytdlp_version,
        ffmpeg_version=ffmpeg_version(),
    )
