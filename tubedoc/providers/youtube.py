from __future__ import annotations

import asyncio
import html
import json
import logging
import re
from pathlib import Path
from typing import Any

import httpx
import yt_dlp

from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.models import Chapter, SubtitleSegment, VideoMetadata
from tubedoc.retry import RetryPolicy, retry_async
from tubedoc.url import build_video_url

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 30.0
QUALITY_HEIGHTS = {"low": 480, "medium": 720, "high": 1080, "360p": 360}
VIDEO_SUFFIXES = {".mp4", ".mkv", ".webm", ".mov", ".m4v"}
AUDIO_SUFFIXES = {".m4a", ".webm", ".mp3", ".opus", ".ogg", ".wav"}
_BASE_OPTS: dict[str, Any] = {"quiet": True, "no_warnings": True, "noplaylist": True}


class YouTubeClient:
    """yt-dlp backed video source; caption tracks are fetched with httpx."""

    def __init__(
        self,
        *,
        http_timeout: float = HTTP_TIMEOUT_SECONDS,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.http_timeout = http_timeout
        self.retry_policy = retry_policy or RetryPolicy(retry_on=(ConnectionError, TimeoutError))
        self._info_by_id: dict[str, dict[str, Any]] = {}

    async def get_metadata(self, url: str) -> VideoMetadata:
        try:
            info = await retry_async(
                lambda: asyncio.to_thread(self._extract_info, url),
                self.retry_policy,
                label="metadata",
            )
        except (ConnectionError, TimeoutError) as exc:
            raise TubedocError(ErrorCode.VIDEO_NOT_FOUND, f"Could not fetch video information for {url}: {exc}") from exc
        return _metadata_from_info(info)

    async def get_playlist_videos(self, url: str) -> list[str]:
        opts = {**_BASE_OPTS, "noplaylist": False, "extract_flat": "in_playlist", "skip_download": True}
        info = await asyncio.to_thread(_run_extract, url, opts)
        video_ids = [str(entry["id"]) for entry in info.get("entries") or [] if entry and entry.get("id")]
        if not video_ids:
            raise TubedocError(ErrorCode.PLAYLIST_EMPTY, f"Playlist has no playable videos: {url}")
        logger.info("Playlist %s: %d videos", info.get("title") or url, len(video_ids))
        return video_ids

    async def get_captions(self, video_id: str, language: str) -> list[SubtitleSegment]:
        """Return the caption track for ``language``; manual subtitles win over automatic ones."""

        info = self._info_by_id.get(video_id)
        if info is None:
            info = await asyncio.to_thread(self._extract_info, build_video_url(video_id))

        track_url = _caption_track_url(info, language)
        if track_url is None:
            return []

        async with httpx.AsyncClient(timeout=self.http_timeout) as client:
            try:
                response = await client.get(track_url)
                response.raise_for_status()
            except httpx.TimeoutException as exc:
                raise TimeoutError(f"Caption download timed out ({language})") from exc
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == 429 or exc.response.status_code >= 500:
                    raise ConnectionError(f"Caption download failed: HTTP {exc.response.status_code}") from exc
                logger.debug("Caption track rejected (%s): HTTP %d", language, exc.response.status_code)
                return []
            except httpx.TransportError as exc:
                raise ConnectionError(f"Caption download failed: {exc}") from exc

        return parse_json3(response.text)

    async def download_audio(self, video_id: str, directory: Path) -> Path:
        opts = {
            **_BASE_OPTS,
            "format": "bestaudio[ext=m4a]/bestaudio/best",
            "outtmpl": str(directory / f"audio_{video_id}.%(ext)s"),
        }
        await asyncio.to_thread(_run_download, build_video_url(video_id), opts)
        return _downloaded_file(directory, f"audio_{video_id}", AUDIO_SUFFIXES)

    async def download_video(self, video_id: str, directory: Path, quality: str) -> Path:
        height = QUALITY_HEIGHTS.get(quality, 480)
        opts = {
            **_BASE_OPTS,
            "format": f"bestvideo[height<={height}][ext=mp4]/best[height<={height}][ext=mp4]/best[height<={height}]/best",
            "outtmpl": str(directory / f"video_{video_id}.%(ext)s"),
        }
        await asyncio.to_thread(_run_download, build_video_url(video_id), opts)
        return _downloaded_file(directory, f"video_{video_id}", VIDEO_SUFFIXES)

    def _extract_info(self, url: str) -> dict[str, Any]:
        info = _run_extract(url, {**_BASE_OPTS, "skip_download": True})
        if info.get("id"):
            self._info_by_id[str(info["id"])] = info
        return info


def parse_json3(payload: str) -> list[SubtitleSegment]:
    """Convert a YouTube json3 caption document into segments."""

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("Caption payload is not json3")
        return []
    if not isinstance(data, dict):
        return []

    segments: list[SubtitleSegment] = []
    for event in data.get("events") or []:
        if not isinstance(event, dict) or event.get("tStartMs") is None:
            continue
        segs = event.get("segs")
        if not isinstance(segs, list):
            continue
        text = "".join(seg.get("utf8", "") for seg in segs if isinstance(seg, dict))
        text = html.unescape(re.sub(r"\s+", " ", text)).strip()
        if not text:
            continue
        start = float(event["tStartMs"]) / 1000.0
        end = start + max(float(event.get("dDurationMs") or 0) / 1000.0, 0.0)
        segments.append(SubtitleSegment(start=start, end=end, text=text))
    return segments


def _run_extract(url: str, opts: dict[str, Any]) -> dict[str, Any]:
    try:
        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(url, download=False)
            if isinstance(info, dict):
                info = ydl.sanitize_info(info)
    except yt_dlp.utils.DownloadError as exc:
        raise _classify_download_error(exc, url) from exc
    if not isinstance(info, dict):
        raise TubedocError(ErrorCode.VIDEO_NOT_FOUND, f"No video information for {url}")
    return info


def _run_download(url: str, opts: dict[str, Any]) -> None:
    try:
        with yt_dlp.YoutubeDL(opts) as ydl:
            ydl.download([url])
    except yt_dlp.utils.DownloadError as exc:
        raise TubedocError(ErrorCode.VIDEO_DOWNLOAD_FAILED, f"Download failed for {url}: {exc}") from exc


def _classify_download_error(exc: Exception, url: str) -> Exception:
    message = str(exc)
    lowered = message.lower()
    if "private video" in lowered or "sign in" in lowered:
        return TubedocError(ErrorCode.VIDEO_PRIVATE, f"Video is private or requires sign-in: {url}")
    if "unavailable" in lowered or "does not exist" in lowered or "not available" in lowered:
        return TubedocError(ErrorCode.VIDEO_NOT_FOUND, f"Video not found: {url}")
    return ConnectionError(message)


def _caption_track_url(info: dict[str, Any], language: str) -> str | None:
    for key in ("subtitles", "automatic_captions"):
        tracks_by_language = info.get(key) or {}
        tracks = tracks_by_language.get(language) or []
        for track in tracks:
            if isinstance(track, dict) and track.get("ext") == "json3" and track.get("url"):
                return str(track["url"])
    return None


def _downloaded_file(directory: Path, stem: str, suffixes: set[str]) -> Path:
    candidates = [
        path
        for path in directory.glob(f"{stem}.*")
        if path.is_file() and path.suffix.lower() in suffixes and path.stat().st_size > 0
    ]
    if not candidates:
        raise TubedocError(ErrorCode.VIDEO_DOWNLOAD_FAILED, f"yt-dlp produced no file for {stem}")
    return max(candidates, key=lambda path: path.stat().st_size)


def _metadata_from_info(info: dict[str, Any]) -> VideoMetadata:
    duration = float(info.get("duration") or 0)
    chapters: list[Chapter] = []
    for entry in info.get("chapters") or []:
        chapters.append(
            Chapter(
                title=str(entry.get("title") or "").strip(),
                start_time=float(entry.get("start_time") or 0),
                end_time=float(entry["end_time"]) if entry.get("end_time") is not None else None,
            )
        )

    captions = sorted(set(info.get("subtitles") or {}) | set(info.get("automatic_captions") or {}))
    return VideoMetadata(
        id=str(info.get("id") or ""),
        title=str(info.get("title") or ""),
        channel=str(info.get("channel") or info.get("uploader") or ""),
        duration=duration,
        description=str(info.get("description") or ""),
        thumbnail=str(info.get("thumbnail") or ""),
        upload_date=str(info.get("upload_date") or ""),
        view_count=int(info.get("view_count") or 0),
        chapters=chapters,
        available_captions=captions,
    )
