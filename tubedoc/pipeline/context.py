"""Shared per-run state threaded through the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable, Protocol

from tubedoc.ai.provider import AIProvider
from tubedoc.ai.unified import UnifiedContentProcessor
from tubedoc.cache import FileCache
from tubedoc.config import DEV_MODE_SETTINGS, DevModeSettings, Settings
from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.models import (
    Chapter,
    ContentSummary,
    ConvertResult,
    DocumentContent,
    PipelineState,
    Screenshot,
    SubtitleResult,
    SubtitleSegment,
    VideoMetadata,
)
from tubedoc.providers.base import FrameCapturer, Renderer, Transcriber, VideoSource

ProgressCallback = Callable[[PipelineState], None]


class Phase(IntEnum):
    """Last completed stage; each accumulated field is readable from its phase on."""

    CREATED = 0
    METADATA = 1
    SUBTITLES = 2
    CHAPTERS = 3
    SUMMARY = 4
    SCREENSHOTS = 5
    CONTENT = 6
    OUTPUT = 7


@dataclass(slots=True)
class Providers:
    youtube: VideoSource
    screenshots: FrameCapturer | None = None
    transcriber: Transcriber | None = None
    ai: AIProvider | None = None
    unified: UnifiedContentProcessor | None = None
    cache: FileCache | None = None
    renderer: Renderer | None = None


@dataclass(slots=True)
class TraceStep:
    name: str
    ms: float


class PipelineStage(Protocol):
    name: str
    phase: Phase

    async def execute(self, context: PipelineContext) -> None: ...


class PipelineContext:
    """Accumulator for one video run.

    Stages write their outputs through the setters; readers go through
    properties that refuse access until the producing phase has completed.
    """

    def __init__(
        self,
        *,
        url: str,
        settings: Settings,
        providers: Providers,
        temp_dir: Path,
        video_id: str = "",
        index: int = 1,
        on_progress: ProgressCallback | None = None,
        trace_enabled: bool = False,
    ) -> None:
        self.url = url
        self.settings = settings
        self.providers = providers
        self.temp_dir = temp_dir
        self.video_id = video_id
        self.index = index
        self.on_progress = on_progress
        self.trace_enabled = trace_enabled
        self.trace_steps: list[TraceStep] = []
        self.state = PipelineState()
        self.phase = Phase.CREATED

        self._metadata: VideoMetadata | None = None
        self._subtitles: SubtitleResult | None = None
        self._processed_segments: list[SubtitleSegment] = []
        self._chapters: list[Chapter] = []
        self._summary: ContentSummary | None = None
        self._screenshots: list[Screenshot] = []
        self._use_chapters = False
        self._content: DocumentContent | None = None
        self._result: ConvertResult | None = None

    @property
    def dev_mode(self) -> bool:
        return self.settings.dev.enabled

    @property
    def dev(self) -> DevModeSettings:
        return DEV_MODE_SETTINGS

    def complete(self, phase: Phase) -> None:
        if phase > self.phase:
            self.phase = phase

    def report(self, progress: int | None = None, step: str | None = None, status: str = "processing") -> None:
        """Publish progress; values below the last reported one are clamped."""

        self.state.status = status
        if step is not None:
            self.state.current_step = step
        if progress is not None:
            self.state.progress = max(self.state.progress, min(100, int(progress)))
        if self.on_progress is not None:
            self.on_progress(
                PipelineState(
                    status=self.state.status,
                    current_step=self.state.current_step,
                    progress=self.state.progress,
                )
            )

    def _require(self, phase: Phase, name: str) -> None:
        if self.phase < phase:
            raise TubedocError(
                ErrorCode.PIPELINE_STATE,
                f"'{name}' is not available before the {phase.name.lower()} stage completes "
                f"(current phase: {self.phase.name.lower()})",
            )

    def _produced(self, value: Any, phase: Phase, name: str) -> Any:
        self._require(phase, name)
        if value is None:
            raise TubedocError(ErrorCode.PIPELINE_STATE, f"'{name}' was never produced by its stage")
        return value

    @property
    def metadata(self) -> VideoMetadata:
        return self._produced(self._metadata, Phase.METADATA, "metadata")

    @metadata.setter
    def metadata(self, value: VideoMetadata) -> None:
        self._metadata = value

    @property
    def subtitles(self) -> SubtitleResult:
        return self._produced(self._subtitles, Phase.SUBTITLES, "subtitles")

    @subtitles.setter
    def subtitles(self, value: SubtitleResult) -> None:
        self._subtitles = value

    @property
    def processed_segments(self) -> list[SubtitleSegment]:
        self._require(Phase.SUBTITLES, "processed_segments")
        return self._processed_segments

    @processed_segments.setter
    def processed_segments(self, value: list[SubtitleSegment]) -> None:
        self._processed_segments = value

    @property
    def chapters(self) -> list[Chapter]:
        self._require(Phase.CHAPTERS, "chapters")
        return self._chapters

    @chapters.setter
    def chapters(self, value: list[Chapter]) -> None:
        self._chapters = value

    @property
    def summary(self) -> ContentSummary | None:
        self._require(Phase.SUMMARY, "summary")
        return self._summary

    @summary.setter
    def summary(self, value: ContentSummary | None) -> None:
        self._summary = value

    @property
    def screenshots(self) -> list[Screenshot]:
        self._require(Phase.SCREENSHOTS, "screenshots")
        return self._screenshots

    @screenshots.setter
    def screenshots(self, value: list[Screenshot]) -> None:
        self._screenshots = value

    @property
    def use_chapters(self) -> bool:
        self._require(Phase.SCREENSHOTS, "use_chapters")
        return self._use_chapters

    @use_chapters.setter
    def use_chapters(self, value: bool) -> None:
        self._use_chapters = value

    @property
    def content(self) -> DocumentContent:
        return self._produced(self._content, Phase.CONTENT, "content")

    @content.setter
    def content(self, value: DocumentContent) -> None:
        self._content = value

    @property
    def result(self) -> ConvertResult:
        return self._produced(self._result, Phase.OUTPUT, "result")

    @result.setter
    def result(self, value: ConvertResult) -> None:
        self._result = value
