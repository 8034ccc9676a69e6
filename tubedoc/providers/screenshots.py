from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path

from tubedoc.config import ScreenshotSettings
from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.models import Chapter, Screenshot
from tubedoc.providers.base import FrameProgress, VideoSource

logger = logging.getLogger(__name__)

FRAME_SIZES = {"low": (854, 480), "medium": (1280, 720), "high": (1920, 1080), "360p": (640, 360)}


class ScreenshotCapturer:
    """Download a video once and grab single frames from it with ffmpeg."""

    def __init__(self, youtube: VideoSource, settings: ScreenshotSettings) -> None:
        self.youtube = youtube
        self.settings = settings

    async def capture_all(
        self,
        video_id: str,
        duration: float,
        output_dir: Path,
        *,
        max_frames: int | None = None,
        quality: str | None = None,
        on_progress: FrameProgress | None = None,
    ) -> list[Screenshot]:
        timestamps = interval_timestamps(duration, self.settings.interval)
        return await self._capture(video_id, timestamps, output_dir, max_frames, quality, on_progress)

    async def capture_for_chapters(
        self,
        video_id: str,
        chapters: list[Chapter],
        output_dir: Path,
        *,
        max_frames: int | None = None,
        quality: str | None = None,
        on_progress: FrameProgress | None = None,
    ) -> list[Screenshot]:
        timestamps = sorted({chapter.start_time for chapter in chapters})
        return await self._capture(video_id, timestamps, output_dir, max_frames, quality, on_progress)

    async def _capture(
        self,
        video_id: str,
        timestamps: list[float],
        output_dir: Path,
        max_frames: int | None,
        quality: str | None,
        on_progress: FrameProgress | None,
    ) -> list[Screenshot]:
        if max_frames is not None:
            timestamps = timestamps[:max_frames]
        if not timestamps:
            return []

        resolved_quality = quality or self.settings.quality
        output_dir.mkdir(parents=True, exist_ok=True)
        video_path = await self.youtube.download_video(video_id, output_dir, resolved_quality)
        width, height = FRAME_SIZES.get(resolved_quality, FRAME_SIZES["low"])

        screenshots: list[Screenshot] = []
        for index, timestamp in enumerate(timestamps, start=1):
            image_path = output_dir / f"frame_{index:04d}_{int(timestamp)}.jpg"
            await asyncio.to_thread(extract_frame, video_path, timestamp, image_path, height)
            screenshots.append(Screenshot(timestamp=timestamp, image_path=str(image_path), width=width, height=height))
            if on_progress is not None:
                on_progress(index, len(timestamps))

        logger.info("Captured %d screenshots for %s", len(screenshots), video_id)
        return screenshots


def interval_timestamps(duration: float, interval: int) -> list[float]:
    if duration <= 0:
        return [0.0]
    timestamps: list[float] = []
    current = 0.0
    while current < duration:
        timestamps.append(current)
        current += float(interval)
    return timestamps


def extract_frame(video_path: Path, timestamp: float, image_path: Path, height: int) -> None:
    command = [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-ss",
        f"{timestamp:.3f}",
        "-i",
        str(video_path),
        "-frames:v",
        "1",
        "-vf",
        f"scale=-2:{height}",
        "-q:v",
        "3",
        str(image_path),
    ]

    try:
        subprocess.run(command, check=True, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise TubedocError(
            ErrorCode.SCREENSHOT_FAILED,
            "ffmpeg executable was not found. Install FFmpeg so ffmpeg is available on PATH.",
        ) from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        details = f" ffmpeg stderr: {stderr}" if stderr else ""
        raise TubedocError(
            ErrorCode.SCREENSHOT_FAILED,
            f"ffmpeg failed to capture a frame at {timestamp:.1f}s from {video_path}.{details}",
        ) from exc
