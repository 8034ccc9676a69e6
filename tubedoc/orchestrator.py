from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from time import perf_counter

from tubedoc.ai.llm import OpenAIChatClient
from tubedoc.ai.provider import AIProvider
from tubedoc.ai.unified import RETRYABLE_ERRORS, UnifiedContentProcessor
from tubedoc.cache import FileCache
from tubedoc.config import Settings
from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.models import ConvertResult, PipelineState
from tubedoc.pipeline.context import PipelineContext, PipelineStage, ProgressCallback, Providers, TraceStep
from tubedoc.pipeline.stages.chapter import ChapterStage
from tubedoc.pipeline.stages.content_processing import ContentProcessingStage
from tubedoc.pipeline.stages.metadata import MetadataStage
from tubedoc.pipeline.stages.output import OutputStage
from tubedoc.pipeline.stages.screenshot import ScreenshotStage
from tubedoc.pipeline.stages.subtitle import SubtitleStage
from tubedoc.pipeline.stages.summary import SummaryStage
from tubedoc.providers.screenshots import ScreenshotCapturer
from tubedoc.providers.transcriber import WhisperTranscriber
from tubedoc.providers.youtube import YouTubeClient
from tubedoc.retry import RetryPolicy
from tubedoc.url import build_video_url, parse_youtube_url

logger = logging.getLogger(__name__)


def work_root(settings: Settings) -> Path:
    return settings.cache_root / "work"


def default_stages() -> list[PipelineStage]:
    return [
        MetadataStage(),
        SubtitleStage(),
        ChapterStage(),
        SummaryStage(),
        ScreenshotStage(),
        ContentProcessingStage(),
        OutputStage(),
    ]


class Orchestrator:
    """Run the stage list for one video or for every video of a playlist."""

    def __init__(
        self,
        settings: Settings,
        providers: Providers,
        *,
        stages: list[PipelineStage] | None = None,
        trace_enabled: bool = False,
    ) -> None:
        self.settings = settings
        self.providers = providers
        self.stages = stages if stages is not None else default_stages()
        self.trace_enabled = trace_enabled
        self.last_trace: list[TraceStep] = []
        self._listeners: list[ProgressCallback] = []

    def on_progress(self, callback: ProgressCallback) -> None:
        self._listeners.append(callback)

    async def process(self, url: str) -> ConvertResult:
        parsed = parse_youtube_url(url)
        if parsed.type == "playlist":
            raise TubedocError(ErrorCode.INVALID_URL, "Playlists must be processed with process_playlist().")
        return await self.process_video(build_video_url(parsed.id), video_id=parsed.id)

    async def process_playlist(self, url: str) -> list[ConvertResult]:
        """Process each playlist video in turn; a failed video is logged and skipped."""

        parsed = parse_youtube_url(url)
        if parsed.type != "playlist":
            return [await self.process_video(build_video_url(parsed.id), video_id=parsed.id)]

        self._publish(PipelineState(status="fetching", current_step="Fetching playlist", progress=0))
        video_ids = await self.providers.youtube.get_playlist_videos(url)

        results: list[ConvertResult] = []
        for index, video_id in enumerate(video_ids, start=1):
            logger.info("[%d/%d] Processing %s", index, len(video_ids), video_id)
            try:
                result = await self.process_video(build_video_url(video_id), video_id=video_id, index=index)
            except Exception as exc:
                logger.error("Video %s failed: %s", video_id, exc)
                continue
            results.append(result)
        logger.info("Playlist finished: %d/%d videos converted", len(results), len(video_ids))
        return results

    async def process_video(self, url: str, *, video_id: str = "", index: int = 1) -> ConvertResult:
        temp_dir = self._work_dir(video_id)
        context = PipelineContext(
            url=url,
            settings=self.settings,
            providers=self.providers,
            temp_dir=temp_dir,
            video_id=video_id,
            index=index,
            on_progress=self._publish,
            trace_enabled=self.trace_enabled,
        )
        try:
            for stage in self.stages:
                started_at = perf_counter()
                try:
                    await stage.execute(context)
                except Exception:
                    elapsed = perf_counter() - started_at
                    logger.error("Stage '%s' failed after %.1fs", stage.name, elapsed)
                    context.report(status="error")
                    raise
                context.complete(stage.phase)
                elapsed_ms = (perf_counter() - started_at) * 1000
                if context.trace_enabled:
                    context.trace_steps.append(TraceStep(name=stage.name, ms=round(elapsed_ms, 1)))
                logger.debug("Stage '%s' done in %.0fms", stage.name, elapsed_ms)
            return context.result
        finally:
            self.last_trace = list(context.trace_steps)
            if not self.settings.cache.enabled:
                shutil.rmtree(temp_dir, ignore_errors=True)

    def _work_dir(self, video_id: str) -> Path:
        """Cached runs keep downloads in a per-video directory that later runs reuse."""

        if self.settings.cache.enabled and video_id:
            path = work_root(self.settings) / video_id
            path.mkdir(parents=True, exist_ok=True)
            return path
        return Path(tempfile.mkdtemp(prefix="tubedoc-"))

    def _publish(self, state: PipelineState) -> None:
        for listener in self._listeners:
            listener(state)


def build_providers(settings: Settings) -> Providers:
    """Wire the production adapters described by ``settings``."""

    attempts = max(1, settings.processing.retry_count)
    youtube = YouTubeClient(retry_policy=RetryPolicy(max_attempts=attempts, retry_on=(ConnectionError, TimeoutError)))
    cache = FileCache(settings.cache_root / "files", ttl_days=settings.cache.ttl_days) if settings.cache.enabled else None

    ai: AIProvider | None = None
    unified: UnifiedContentProcessor | None = None
    try:
        client = OpenAIChatClient.from_env(settings.ai.model, settings.ai.api_key_env)
    except TubedocError as exc:
        if settings.summary.enabled or settings.translation.enabled:
            logger.warning("AI features disabled: %s", exc.message)
    else:
        ai = AIProvider(client)
        unified = UnifiedContentProcessor(
            client,
            cache=settings.cache_root / "ai" if settings.cache.enabled else None,
            retry_policy=RetryPolicy(max_attempts=attempts, retry_on=RETRYABLE_ERRORS),
            max_batch_tokens=settings.ai.max_batch_tokens,
            temperature=settings.ai.temperature,
        )

    return Providers(
        youtube=youtube,
        screenshots=ScreenshotCapturer(youtube, settings.screenshot),
        transcriber=WhisperTranscriber(settings.whisper),
        ai=ai,
        unified=unified,
        cache=cache,
    )
