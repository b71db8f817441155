"""Tests for filename sanitizing and Content-Disposition headers."""

import pytest

from models.schemas import SUPPORTED_BITRATES
from services.filenames import MAX_FILENAME_BYTES, content_disposition, mp3_filename, sanitize

HOSTILE = '/\\?<>:*|"'


def test_sanitize_strips_hostile_characters():
    assert sanitize('AC/DC: "Back in Black" <Live>?') == "ACDC Back in Black Live"


def test_sanitize_strips_control_characters():
    assert sanitize("Line\nBreak\tTab\x00Null\x85") == "LineBreakTabNull"


@pytest.mark.parametrize("name", ["..", ".", "CON", "nul.txt", "com1"])
def test_sanitize_reserved_names(name):
    assert sanitize(name) == ""


def test_sanitize_trailing_dots_and_spaces():
    assert sanitize("Song. . ") == "Song"


@pytest.mark.parametrize("bitrate", SUPPORTED_BITRATES)
def test_mp3_filename_has_bitrate_and_no_hostile_characters(bitrate):
    filename = mp3_filename('Never/Gonna: "Give" <You> Up?', bitrate, "dQw4w9WgXcQ")
    assert filename == f"NeverGonna Give You Up ({bitrate}kbps).mp3"
    assert not any(c in filename for c in HOSTILE)


def test_mp3_filename_fallback_when_title_sanitizes_to_nothing():
    assert mp3_filename('???///"', 192, "dQw4w9WgXcQ") == "audio-dQw4w9WgXcQ.mp3"


def test_mp3_filename_keeps_suffix_when_truncated():
    filename = mp3_filename("ä" * 400, 320, "dQw4w9WgXcQ")
    assert filename.endswith(" (320kbps).mp3")
    assert len(filename.encode("utf-8")) <= MAX_FILENAME_BYTES


def test_content_disposition_latin1():
    assert content_disposition("Café (192kbps).mp3") == 'attachment; filename="Café (192kbps).mp3"'


def test_content_disposition_non_latin1():
    header = content_disposition("東京 Song (192kbps).mp3")
    assert header.startswith('attachment; filename="Song (192kbps).mp3"')
    assert "filename*=utf-8''%E6%9D%B1%E4%BA%AC%20Song%20%28192kbps%29.mp3" in header
    header.encode("latin-1")
