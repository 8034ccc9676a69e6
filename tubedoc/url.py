from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

from tubedoc.errors import ErrorCode, TubedocError

VIDEO_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{11}")


@dataclass(frozen=True, slots=True)
class ParsedUrl:
    type: str
    id: str


def parse_youtube_url(value: str) -> ParsedUrl:
    """Classify a YouTube URL (or bare video id) as a video or a playlist."""

    raw = value.strip()
    if VIDEO_ID_PATTERN.fullmatch(raw):
        return ParsedUrl(type="video", id=raw)

    if not re.match(r"^https?://", raw):
        if "youtube.com" in raw or "youtu.be" in raw:
            raw = f"https://{raw}"
        else:
            raise TubedocError(ErrorCode.INVALID_URL, f"Unsupported video input: {value}")

    parsed = urlparse(raw)
    host = parsed.netloc.lower()
    path_parts = [p for p in parsed.path.split("/") if p]
    query = parse_qs(parsed.query)

    if host.endswith("youtu.be") and path_parts:
        candidate = path_parts[0]
        if VIDEO_ID_PATTERN.fullmatch(candidate):
            return ParsedUrl(type="video", id=candidate)

    if "youtube.com" in host:
        query_v = query.get("v", [])
        if query_v and VIDEO_ID_PATTERN.fullmatch(query_v[0]):
            return ParsedUrl(type="video", id=query_v[0])

        query_list = query.get("list", [])
        if path_parts[:1] == ["playlist"] and query_list:
            return ParsedUrl(type="playlist", id=query_list[0])

        if len(path_parts) >= 2 and path_parts[0] in {"shorts", "embed", "live"}:
            candidate = path_parts[1]
            if VIDEO_ID_PATTERN.fullmatch(candidate):
                return ParsedUrl(type="video", id=candidate)

    raise TubedocError(ErrorCode.INVALID_URL, f"Could not extract video ID from input: {value}")


def build_video_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def build_playlist_url(playlist_id: str) -> str:
    return f"https://www.youtube.com/playlist?list={playlist_id}"
