import asyncio
import contextlib
import re

import httpx
import structlog

from config import settings
from models.schemas import SourceInfo
from services.youtube import SourceUnavailable

logger = structlog.get_logger()

_CONTENT_RANGE = re.compile(r"bytes (\d+)-(\d+)/(\d+|\*)")
_EOF = None


class SourceStream:
    """
    Live, single-pass audio byte stream for one resolved video.

    A background pump downloads the audio in HTTP range windows and parks
    chunks in a bounded queue (the high water mark), so a briefly stalled
    encoder doesn't stall the download. Consumers call read() until it
    returns b"" and must always call aclose().
    """

    def __init__(
        self,
        info: SourceInfo,
        client: httpx.AsyncClient | None = None,
        high_water_mark: int | None = None,
        chunk_size: int | None = None,
        range_chunk_size: int | None = None,
    ):
        self.info = info
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.socket_timeout),
            follow_redirects=True,
        )
        self._chunk_size = chunk_size or settings.chunk_size
        self._range_chunk_size = range_chunk_size or settings.source_range_chunk_size
        high_water_mark = high_water_mark or settings.source_high_water_mark
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(
            maxsize=max(1, high_water_mark // self._chunk_size)
        )
        self._pump_task: asyncio.Task | None = None
        self._error: SourceUnavailable | None = None
        self._eof = False
        self._closed = False
        self.bytes_read = 0

    @classmethod
    async def open(cls, info: SourceInfo, **kwargs) -> "SourceStream":
        """Request the first window and start pumping. Raises SourceUnavailable."""
        stream = cls(info, **kwargs)
        try:
            response = await stream._open_window(0)
        except BaseException:
            await stream.aclose()
            raise
        stream._pump_task = asyncio.create_task(stream._pump(response))
        return stream

    async def read(self) -> bytes:
        """Next chunk of raw audio, b"" once the stream is exhausted."""
        if self._eof:
            return b""
        chunk = await self._queue.get()
        if chunk is _EOF:
            self._eof = True
            if self._error is not None:
                raise self._error
            return b""
        self.bytes_read += len(chunk)
        return chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
        if self._owns_client:
            await self._client.aclose()

    async def _open_window(self, offset: int) -> httpx.Response:
        headers = dict(self.info.http_headers)
        headers["Range"] = f"bytes={offset}-{offset + self._range_chunk_size - 1}"
        try:
            request = self._client.build_request("GET", self.info.stream_url, headers=headers)
            response = await self._client.send(request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise SourceUnavailable(f"Audio stream request failed: {e}")

        if response.status_code not in (200, 206):
            await response.aclose()
            raise SourceUnavailable(f"Audio stream returned HTTP {response.status_code}")
        return response

    async def _pump(self, response: httpx.Response) -> None:
        offset = 0
        try:
            while True:
                window_start = offset
                try:
                    async for chunk in response.aiter_bytes(self._chunk_size):
                        offset += len(chunk)
                        await self._queue.put(chunk)
                finally:
                    await response.aclose()

                if not self._has_more(response, window_start, offset):
                    break
                if offset == window_start:
                    raise SourceUnavailable("Audio stream ended early")
                response = await self._open_window(offset)
        except SourceUnavailable as e:
            self._error = e
        except Exception as e:
            # httpx stream errors (StreamClosed and friends) aren't HTTPErrors
            self._error = SourceUnavailable(f"Audio stream interrupted: {e}")

        if self._error is not None:
            logger.warning("source_stream_failed", video_id=self.info.video_id, offset=offset, error=str(self._error))
        await self._queue.put(_EOF)

    def _has_more(self, response: httpx.Response, window_start: int, offset: int) -> bool:
        # A plain 200 means the server ignored the range and sent everything
        if response.status_code != 206:
            return False

        match = _CONTENT_RANGE.match(response.headers.get("content-range", ""))
        if match and match.group(3) != "*":
            return offset < int(match.group(3))
        return offset - window_start >= self._range_chunk_size
