from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

import pytest

from tubedoc.ai.provider import SectionDigest, VideoTypeResult
from tubedoc.config import Settings
from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.models import (
    Chapter,
    ContentSummary,
    EnhancedSectionContent,
    GlobalSummary,
    MainInformation,
    PipelineState,
    Screenshot,
    Section,
    SubtitleResult,
    SubtitleSegment,
    UnifiedProcessResult,
    VideoMetadata,
)
from tubedoc.pipeline.context import Phase, PipelineContext, Providers


def make_segments(count: int = 6, step: float = 30, prefix: str = "line") -> list[SubtitleSegment]:
    return [SubtitleSegment(start=i * step, end=i * step + step, text=f"{prefix} {i}") for i in range(count)]


class FakeYouTube:
    def __init__(self) -> None:
        self.metadata = VideoMetadata(
            id="dQw4w9WgXcQ",
            title="Caching Deep Dive",
            channel="Conf Talks",
            duration=180,
            available_captions=["en"],
        )
        self.captions: dict[str, list[SubtitleSegment]] = {"en": make_segments()}
        self.playlist: list[str] = []
        self.failing_ids: set[str] = set()
        self.audio_downloads: list[str] = []

    async def get_metadata(self, url: str) -> VideoMetadata:
        video_id = url.rsplit("=", 1)[-1]
        if video_id in self.failing_ids:
            raise TubedocError(ErrorCode.VIDEO_NOT_FOUND, f"Video not found: {video_id}")
        return replace(self.metadata, id=video_id, chapters=list(self.metadata.chapters))

    async def get_playlist_videos(self, url: str) -> list[str]:
        return list(self.playlist)

    async def get_captions(self, video_id: str, language: str) -> list[SubtitleSegment]:
        return list(self.captions.get(language, []))

    async def download_audio(self, video_id: str, directory: Path) -> Path:
        self.audio_downloads.append(video_id)
        path = directory / f"{video_id}.m4a"
        path.write_bytes(b"audio")
        return path

    async def download_video(self, video_id: str, directory: Path, quality: str) -> Path:
        path = directory / f"{video_id}.mp4"
        path.write_bytes(b"video")
        return path


class FakeCapturer:
    def __init__(self, interval: int = 60) -> None:
        self.interval = interval
        self.calls: list[dict[str, Any]] = []

    async def capture_all(self, video_id, duration, output_dir, *, max_frames=None, quality=None, on_progress=None):
        timestamps = [float(t) for t in range(0, int(duration), self.interval)] or [0.0]
        self.calls.append({"mode": "interval", "max_frames": max_frames, "quality": quality})
        return self._shots(timestamps, output_dir, max_frames, on_progress)

    async def capture_for_chapters(self, video_id, chapters, output_dir, *, max_frames=None, quality=None, on_progress=None):
        timestamps = sorted({chapter.start_time for chapter in chapters})
        self.calls.append({"mode": "chapters", "max_frames": max_frames, "quality": quality})
        return self._shots(timestamps, output_dir, max_frames, on_progress)

    @staticmethod
    def _shots(timestamps, output_dir, max_frames, on_progress) -> list[Screenshot]:
        if max_frames is not None:
            timestamps = timestamps[:max_frames]
        shots = []
        for index, timestamp in enumerate(timestamps, start=1):
            shots.append(Screenshot(timestamp=timestamp, image_path=str(Path(output_dir) / f"{index}.jpg"), width=854, height=480))
            if on_progress is not None:
                on_progress(index, len(timestamps))
        return shots


class FakeTranscriber:
    def __init__(self, segments: list[SubtitleSegment] | None = None) -> None:
        self.segments = segments if segments is not None else make_segments(prefix="spoken")
        self.calls: list[Path] = []

    async def transcribe(self, audio_path: Path, language: str | None = None) -> SubtitleResult:
        self.calls.append(audio_path)
        return SubtitleResult(source="whisper", language=language or "en", segments=list(self.segments))


class FakeAI:
    def __init__(self) -> None:
        self.chapters: list[Chapter] = []
        self.fail_translate = False
        self.fail_summary = False
        self.fail_sections = False
        self.calls: list[str] = []

    async def translate(self, segments, *, target_language, source_language=None):
        self.calls.append("translate")
        if self.fail_translate:
            raise TubedocError(ErrorCode.AI_REQUEST_FAILED, "translation down")
        return [replace(segment, text=f"{target_language}:{segment.text}") for segment in segments]

    async def detect_topic_shifts(self, segments, *, min_chapter_length=60, max_chapters=20, language="ko"):
        self.calls.append("chapters")
        return list(self.chapters)[:max_chapters]

    async def classify_video_type(self, metadata, subtitle_sample):
        self.calls.append("classify")
        return VideoTypeResult(type="lecture", confidence=0.8)

    async def summarize(self, segments, *, max_length=500, language="ko", style="brief"):
        self.calls.append("summarize")
        if self.fail_summary:
            raise TubedocError(ErrorCode.AI_REQUEST_FAILED, "summary down")
        return ContentSummary(summary="Overall summary", key_points=["k1"], language=language)

    async def summarize_sections(self, sections, *, language="ko", max_summary_length=150, max_key_points=3):
        self.calls.append("sections")
        if self.fail_sections:
            return [SectionDigest(timestamp=section.timestamp) for section in sections]
        return [
            SectionDigest(timestamp=section.timestamp, summary=f"digest {section.timestamp:g}", key_points=["p"])
            for section in sections
        ]


class FakeUnified:
    def __init__(self, *, fail: bool = False, global_summary: str = "") -> None:
        self.fail = fail
        self.global_summary = global_summary
        self.received: list[list[Section]] = []
        self.options: list[Any] = []

    async def process_all_sections(self, sections, options) -> UnifiedProcessResult:
        self.received.append(list(sections))
        self.options.append(options)
        if self.fail:
            raise RuntimeError("unified processor unavailable")
        return UnifiedProcessResult(
            sections={
                section.timestamp: EnhancedSectionContent(
                    one_liner=f"unified {section.timestamp:g}",
                    key_points=["u"],
                    notable_quotes=[],
                    main_information=MainInformation(),
                    translated_text="translated",
                )
                for section in sections
            },
            global_summary=GlobalSummary(summary=self.global_summary, key_points=["g"] if self.global_summary else []),
            total_tokens_used=42,
        )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings.model_validate(
        {
            "output": {"directory": str(tmp_path / "out")},
            "cache": {"enabled": False, "directory": str(tmp_path / "cache")},
        }
    )


@pytest.fixture
def youtube() -> FakeYouTube:
    return FakeYouTube()


@pytest.fixture
def capturer() -> FakeCapturer:
    return FakeCapturer()


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def fake_ai() -> FakeAI:
    return FakeAI()


@pytest.fixture
def fake_unified_factory() -> Callable[..., FakeUnified]:
    return FakeUnified


@pytest.fixture
def providers(youtube: FakeYouTube, capturer: FakeCapturer) -> Providers:
    return Providers(youtube=youtube, screenshots=capturer)


@pytest.fixture
def make_context(tmp_path: Path) -> Callable[..., PipelineContext]:
    def _make(
        settings: Settings,
        providers: Providers,
        *,
        phase: Phase = Phase.CREATED,
        states: list[PipelineState] | None = None,
        **fields: Any,
    ) -> PipelineContext:
        work_dir = tmp_path / "work"
        work_dir.mkdir(exist_ok=True)
        context = PipelineContext(
            url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            settings=settings,
            providers=providers,
            temp_dir=work_dir,
            video_id="dQw4w9WgXcQ",
            on_progress=states.append if states is not None else None,
        )
        for name, value in fields.items():
            setattr(context, name, value)
        context.complete(phase)
        return context

    return _make
