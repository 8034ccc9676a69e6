from __future__ import annotations

from pathlib import Path
from typing import Callable, Protocol

from tubedoc.models import Chapter, DocumentContent, Screenshot, SubtitleResult, SubtitleSegment, VideoMetadata

FrameProgress = Callable[[int, int], None]


class VideoSource(Protocol):
    async def get_metadata(self, url: str) -> VideoMetadata: ...

    async def get_playlist_videos(self, url: str) -> list[str]: ...

    async def get_captions(self, video_id: str, language: str) -> list[SubtitleSegment]: ...

    async def download_audio(self, video_id: str, directory: Path) -> Path: ...

    async def download_video(self, video_id: str, directory: Path, quality: str) -> Path: ...


class Transcriber(Protocol):
    async def transcribe(self, audio_path: Path, language: str | None = None) -> SubtitleResult: ...


class FrameCapturer(Protocol):
    async def capture_all(
        self,
        video_id: str,
        duration: float,
        output_dir: Path,
        *,
        max_frames: int | None = None,
        quality: str | None = None,
        on_progress: FrameProgress | None = None,
    ) -> list[Screenshot]: ...

    async def capture_for_chapters(
        self,
        video_id: str,
        chapters: list[Chapter],
        output_dir: Path,
        *,
        max_frames: int | None = None,
        quality: str | None = None,
        on_progress: FrameProgress | None = None,
    ) -> list[Screenshot]: ...


class Renderer(Protocol):
    def render(self, content: DocumentContent, output_path: Path) -> Path: ...
