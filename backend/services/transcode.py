import asyncio
import collections
import contextlib
import os
import shlex

import structlog
from pydantic import BaseModel

from config import settings
from models.schemas import ConversionRequest, SourceInfo
from services.source_stream import SourceStream
from services.youtube import SourceUnavailable

logger = structlog.get_logger()

AUDIO_CODEC = "libmp3lame"
OUTPUT_FORMAT = "mp3"
STDERR_TAIL_LINES = 20


class EncodingError(Exception):
    pass


class TranscodeOptions(BaseModel):
    bitrate: int
    start: int | None = None
    duration: int | None = None
    title: str
    artist: str
    comment: str
    cover: bytes | None = None

    @classmethod
    def for_request(
        cls, request: ConversionRequest, source: SourceInfo, cover: bytes | None = None
    ) -> "TranscodeOptions":
        return cls(
            bitrate=request.bitrate,
            start=request.start,
            duration=request.duration,
            title=source.title,
            artist=source.artist,
            comment=settings.metadata_comment,
            cover=cover,
        )


def build_ffmpeg_command(
    options: TranscodeOptions, cover_fd: int | None = None, binary: str | None = None
) -> list[str]:
    """
    Build the encoder command line.

    Audio is read from stdin and the MP3 is written to stdout. When cover_fd
    is given the image is read from that inherited pipe and muxed in as
    attached album art.
    """
    cmd = [
        binary or settings.ffmpeg_binary,
        "-hide_banner",
        "-loglevel", "error",
    ]

    # Input side seek: start decoding at the offset
    if options.start is not None:
        cmd.extend(["-ss", str(options.start)])
    cmd.extend(["-i", "pipe:0"])

    if cover_fd is not None:
        cmd.extend(["-f", "image2pipe", "-i", f"pipe:{cover_fd}"])

    cmd.extend(["-map", "0:a"])
    if cover_fd is not None:
        cmd.extend([
            "-map", "1:v",
            "-c:v", "mjpeg",
            "-frames:v", "1",
            "-disposition:v", "attached_pic",
            "-metadata:s:v", "title=Album cover",
            "-metadata:s:v", "comment=Cover (front)",
        ])

    cmd.extend(["-c:a", AUDIO_CODEC, "-b:a", f"{options.bitrate}k"])

    if options.start is not None and options.duration is not None:
        cmd.extend(["-t", str(options.duration)])

    cmd.extend([
        "-id3v2_version", "3",
        "-metadata", f"title={options.title}",
        "-metadata", f"artist={options.artist}",
        "-metadata", f"comment={options.comment}",
        "-f", OUTPUT_FORMAT,
        "pipe:1",
    ])
    return cmd


def _write_cover(fd: int, data: bytes) -> None:
    # The encoder may exit before reading the whole image, its exit status
    # is what gets reported.
    with contextlib.suppress(BrokenPipeError), open(fd, "wb") as pipe:
        pipe.write(data)


class TranscodeJob:
    """
    One encoder process serving one HTTP response.

    start() spawns the encoder and background tasks that feed it the source
    stream (and cover image) and collect its stderr. read() hands out encoded
    chunks as they are produced and raises once the encoder has failed.
    aclose() must be called on every exit path; it kills the encoder if it
    is still running and closes the source stream.
    """

    def __init__(
        self,
        options: TranscodeOptions,
        source: SourceStream,
        binary: str | None = None,
        chunk_size: int | None = None,
    ):
        self.options = options
        self.source = source
        self.binary = binary or settings.ffmpeg_binary
        self.chunk_size = chunk_size or settings.chunk_size
        self.outcome: str | None = None  # "success" | "error"
        self.bytes_out = 0

        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Future] = []
        self._stderr_task: asyncio.Task | None = None
        self._stderr_tail: collections.deque[str] = collections.deque(maxlen=STDERR_TAIL_LINES)
        self._source_error: SourceUnavailable | None = None
        self._finished = False
        self._closed = False

    @property
    def video_id(self) -> str:
        return self.source.info.video_id

    def command(self, cover_fd: int | None = None) -> list[str]:
        return build_ffmpeg_command(self.options, cover_fd=cover_fd, binary=self.binary)

    async def start(self) -> None:
        read_fd = write_fd = None
        if self.options.cover:
            read_fd, write_fd = os.pipe()

        argv = self.command(read_fd)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                pass_fds=(read_fd,) if read_fd is not None else (),
            )
        except OSError as e:
            if write_fd is not None:
                os.close(write_fd)
            self.outcome = "error"
            raise EncodingError(f"Could not start encoder: {e}")
        finally:
            if read_fd is not None:
                os.close(read_fd)

        logger.info("ffmpeg_started", video_id=self.video_id, command=shlex.join(argv))

        self._stderr_task = asyncio.create_task(self._drain_stderr())
        self._tasks.append(asyncio.create_task(self._feed()))
        self._tasks.append(self._stderr_task)
        if write_fd is not None:
            self._tasks.append(asyncio.create_task(asyncio.to_thread(_write_cover, write_fd, self.options.cover)))

    async def read(self) -> bytes:
        """Next encoded chunk, b"" after a clean finish."""
        if self._finished:
            return b""
        if self._process is None:
            raise EncodingError("Encoder not started")

        chunk = await self._process.stdout.read(self.chunk_size)
        if chunk:
            self.bytes_out += len(chunk)
            return chunk

        self._finished = True
        await self._wait_for_exit()
        return b""

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        for task in self._tasks:
            task.cancel()

        if self._process is not None:
            if self._process.returncode is None:
                logger.info("ffmpeg_killed", video_id=self.video_id, bytes_out=self.bytes_out)
                with contextlib.suppress(ProcessLookupError):
                    self._process.kill()
            await self._process.wait()

        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.source.aclose()

    async def _wait_for_exit(self) -> None:
        returncode = await self._process.wait()

        # Let stderr reach EOF so the tail is complete
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=1)

        if self._source_error is not None:
            self.outcome = "error"
            raise self._source_error

        if returncode != 0:
            self.outcome = "error"
            detail = "\n".join(self._stderr_tail) or f"ffmpeg exited with code {returncode}"
            logger.error("transcode_failed", video_id=self.video_id, returncode=returncode, detail=detail)
            raise EncodingError(detail)

        self.outcome = "success"
        logger.info("transcode_complete", video_id=self.video_id, bytes_in=self.source.bytes_read, bytes_out=self.bytes_out)

    async def _feed(self) -> None:
        stdin = self._process.stdin
        try:
            while True:
                chunk = await self.source.read()
                if not chunk:
                    break
                stdin.write(chunk)
                await stdin.drain()
        except SourceUnavailable as e:
            # Kill rather than close stdin, a truncated input must not look like a clean end
            self._source_error = e
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()
        except (BrokenPipeError, ConnectionResetError):
            # Encoder stopped reading, e.g. once the trim duration is reached
            logger.debug("ffmpeg_stdin_closed", video_id=self.video_id)
        finally:
            if not stdin.is_closing():
                stdin.close()

    async def _drain_stderr(self) -> None:
        async for line in self._process.stderr:
            text = line.decode("utf-8", "ignore").strip()
            if text:
                self._stderr_tail.append(text)
