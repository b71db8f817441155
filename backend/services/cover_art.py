import httpx

from config import settings


class CoverArtUnavailable(Exception):
    pass


class CoverArtFetcher:
    """Single-shot, size-capped download of a cover image. Never retries."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    async def fetch(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=settings.cover_timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url, headers={"User-Agent": settings.user_agent}) as response:
                    if not response.is_success:
                        raise CoverArtUnavailable(f"Cover fetch returned HTTP {response.status_code}")

                    data = bytearray()
                    async for chunk in response.aiter_bytes():
                        data.extend(chunk)
                        if len(data) > settings.cover_max_bytes:
                            raise CoverArtUnavailable("Cover image too large")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise CoverArtUnavailable(f"Cover fetch failed: {e}")

        if not data:
            raise CoverArtUnavailable("Cover image is empty")
        return bytes(data)
