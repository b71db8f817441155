import asyncio

import anyio
import structlog
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from config import settings
from services.filenames import content_disposition
from services.transcode import EncodingError, TranscodeJob
from services.youtube import SourceUnavailable

logger = structlog.get_logger()


class TranscodeStreamResponse(StreamingResponse):
    """
    Relays a running TranscodeJob to the client.

    Headers go out before the first chunk and can't be taken back, so a
    failure mid-stream is re-raised and the server aborts the connection,
    leaving the client with a truncated download. The job is closed however
    the response ends, including client disconnects.
    """

    def __init__(self, job: TranscodeJob, first_chunk: bytes, filename: str):
        self.job = job
        super().__init__(
            self._relay(first_chunk),
            media_type="audio/mpeg",
            headers={"Content-Disposition": content_disposition(filename)},
        )

    async def _relay(self, first_chunk: bytes):
        if first_chunk:
            yield first_chunk
        while True:
            try:
                chunk = await self.job.read()
            except (EncodingError, SourceUnavailable) as e:
                logger.error(
                    "stream_aborted",
                    video_id=self.job.video_id,
                    bytes_out=self.job.bytes_out,
                    error=str(e),
                )
                raise
            if not chunk:
                break
            yield chunk

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self.job.aclose()


def first_chunk_timeout(start: int | None) -> float:
    """
    How long to wait for the first encoded bytes.

    ffmpeg seeks a piped input by decoding and discarding everything before
    `start`, so a trimmed job stays silent until that much source audio has
    been downloaded.
    """
    return settings.first_chunk_timeout_seconds + (start or 0) * settings.first_chunk_seek_allowance


async def open_transcode_stream(
    job: TranscodeJob, filename: str, timeout: float | None = None
) -> TranscodeStreamResponse:
    """
    Start the job and wait for its first encoded bytes.

    Nothing has been sent to the client yet, so any failure here is raised
    to the caller (after tearing the job down) and can still become a
    proper error response.
    """
    timeout = timeout or first_chunk_timeout(job.options.start)
    try:
        await job.start()
        try:
            first_chunk = await asyncio.wait_for(job.read(), timeout)
        except asyncio.TimeoutError:
            raise EncodingError(f"Encoder produced no output within {timeout:g}s")
    except BaseException:
        with anyio.CancelScope(shield=True):
            await job.aclose()
        raise

    return TranscodeStreamResponse(job, first_chunk, filename)
