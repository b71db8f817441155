"""Tests for relaying an encoder's output to the client as an ASGI response."""

import asyncio
import types

import pytest
from starlette.requests import ClientDisconnect

from config import settings
from services.delivery import TranscodeStreamResponse, first_chunk_timeout, open_transcode_stream
from services.transcode import EncodingError

FILENAME = "Song (192kbps).mp3"


class FakeJob:
    """Scripted encoder output: bytes are returned, exceptions raised, "hang" blocks."""

    def __init__(self, steps, start=None, delay=0):
        self.options = types.SimpleNamespace(start=start)
        self.video_id = "dQw4w9WgXcQ"
        self.bytes_out = 0
        self.closed = False
        self._steps = list(steps)
        self._delay = delay

    async def start(self):
        pass

    async def read(self):
        if self._delay:
            await asyncio.sleep(self._delay)
        if not self._steps:
            return b""
        step = self._steps.pop(0)
        if isinstance(step, str):
            await asyncio.Event().wait()
        if isinstance(step, Exception):
            raise step
        self.bytes_out += len(step)
        return step

    async def aclose(self):
        self.closed = True


def http_scope(spec_version="2.4"):
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": spec_version},
        "method": "GET",
        "path": "/api/convert",
        "headers": [],
    }


async def never_disconnects():
    await asyncio.Event().wait()


def body_chunks(messages):
    return [m["body"] for m in messages if m["type"] == "http.response.body" and m.get("body")]


def test_full_stream_is_relayed():
    job = FakeJob([b"frame-1", b"frame-2"])
    messages = []

    async def send(message):
        messages.append(message)

    response = TranscodeStreamResponse(job, b"ID3", FILENAME)
    asyncio.run(response(http_scope(), never_disconnects, send))

    start = messages[0]
    assert start["status"] == 200
    assert (b"content-type", b"audio/mpeg") in start["headers"]
    assert body_chunks(messages) == [b"ID3", b"frame-1", b"frame-2"]
    assert messages[-1] == {"type": "http.response.body", "body": b"", "more_body": False}
    assert job.closed


def test_failure_after_headers_aborts_without_second_status():
    """A late failure can't change the status, the download just ends early."""
    job = FakeJob([b"frame-1", EncodingError("Error while decoding stream"), b"never-sent"])
    messages = []

    async def send(message):
        messages.append(message)

    response = TranscodeStreamResponse(job, b"ID3", FILENAME)
    with pytest.raises(EncodingError):
        asyncio.run(response(http_scope(), never_disconnects, send))

    starts = [m for m in messages if m["type"] == "http.response.start"]
    assert len(starts) == 1
    assert starts[0]["status"] == 200
    assert body_chunks(messages) == [b"ID3", b"frame-1"]
    assert not any(m.get("more_body") is False for m in messages)
    assert job.closed


def test_client_gone_while_sending_closes_job():
    job = FakeJob([b"frame-1", b"frame-2"])
    messages = []

    async def send(message):
        if message["type"] == "http.response.body":
            raise OSError("Connection reset by peer")
        messages.append(message)

    response = TranscodeStreamResponse(job, b"ID3", FILENAME)
    with pytest.raises(ClientDisconnect):
        asyncio.run(response(http_scope(), never_disconnects, send))

    assert len(messages) == 1
    assert job.closed


def test_disconnect_message_closes_stalled_job():
    job = FakeJob(["hang"])
    messages = []

    async def send(message):
        messages.append(message)

    async def receive():
        await asyncio.sleep(0.05)
        return {"type": "http.disconnect"}

    response = TranscodeStreamResponse(job, b"ID3", FILENAME)
    asyncio.run(response(http_scope(spec_version="2.0"), receive, send))

    assert body_chunks(messages) == [b"ID3"]
    assert job.closed


def test_first_chunk_timeout_grows_with_trim_start(monkeypatch):
    monkeypatch.setattr(settings, "first_chunk_timeout_seconds", 60.0)
    monkeypatch.setattr(settings, "first_chunk_seek_allowance", 0.5)

    assert first_chunk_timeout(None) == 60.0
    assert first_chunk_timeout(0) == 60.0
    assert first_chunk_timeout(3600) == 60.0 + 1800.0


def test_silent_encoder_times_out_before_headers(monkeypatch):
    monkeypatch.setattr(settings, "first_chunk_timeout_seconds", 0.05)
    job = FakeJob(["hang"])

    with pytest.raises(EncodingError, match="no output"):
        asyncio.run(open_transcode_stream(job, FILENAME))
    assert job.closed


def test_trimmed_job_gets_longer_first_chunk_wait(monkeypatch):
    monkeypatch.setattr(settings, "first_chunk_timeout_seconds", 0.05)
    monkeypatch.setattr(settings, "first_chunk_seek_allowance", 0.1)
    job = FakeJob([b"ID3"], start=5, delay=0.2)

    response = asyncio.run(open_transcode_stream(job, FILENAME))

    assert isinstance(response, TranscodeStreamResponse)
    assert not job.closed
