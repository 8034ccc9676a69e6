from __future__ import annotations

import pytest

from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.url import ParsedUrl, build_playlist_url, build_video_url, parse_youtube_url


@pytest.mark.parametrize(
    "value",
    [
        "dQw4w9WgXcQ",
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://youtu.be/dQw4w9WgXcQ",
        "youtube.com/watch?v=dQw4w9WgXcQ&t=42",
        "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ&list=PL1234567890",
    ],
)
def test_parse_youtube_url_recognizes_video_forms(value: str) -> None:
    assert parse_youtube_url(value) == ParsedUrl(type="video", id="dQw4w9WgXcQ")


def test_parse_youtube_url_recognizes_playlists() -> None:
    parsed = parse_youtube_url("https://www.youtube.com/playlist?list=PLabc123")

    assert parsed == ParsedUrl(type="playlist", id="PLabc123")


@pytest.mark.parametrize("value", ["not a url", "https://example.com/watch?v=dQw4w9WgXcQ", "https://youtu.be/short"])
def test_parse_youtube_url_rejects_unknown_inputs(value: str) -> None:
    with pytest.raises(TubedocError) as exc_info:
        parse_youtube_url(value)

    assert exc_info.value.code is ErrorCode.INVALID_URL


def test_build_urls() -> None:
    assert build_video_url("dQw4w9WgXcQ") == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert build_playlist_url("PLabc123") == "https://www.youtube.com/playlist?list=PLabc123"
