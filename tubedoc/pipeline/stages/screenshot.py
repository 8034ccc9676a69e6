from __future__ import annotations

import logging

from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.pipeline.context import Phase, PipelineContext

logger = logging.getLogger(__name__)

PROGRESS_START = 40
PROGRESS_SPAN = 30


class ScreenshotStage:
    name = "screenshots"
    phase = Phase.SCREENSHOTS

    async def execute(self, context: PipelineContext) -> None:
        capturer = context.providers.screenshots
        if capturer is None:
            raise TubedocError(ErrorCode.SCREENSHOT_FAILED, "No screenshot capturer is configured.")

        context.report(PROGRESS_START, "Capturing screenshots")
        chapters = context.chapters
        use_chapters = bool(chapters)
        max_frames = context.dev.max_screenshots if context.dev_mode else None
        quality = context.dev.video_quality if context.dev_mode else None
        output_dir = context.temp_dir / "screenshots"

        def on_progress(current: int, total: int) -> None:
            progress = PROGRESS_START + (current * PROGRESS_SPAN) // max(total, 1)
            context.report(progress, f"Capturing screenshots ({current}/{total})")

        if use_chapters:
            logger.info("Capturing one screenshot per chapter (%d chapters)", len(chapters))
            screenshots = await capturer.capture_for_chapters(
                context.video_id,
                chapters,
                output_dir,
                max_frames=max_frames,
                quality=quality,
                on_progress=on_progress,
            )
        else:
            screenshots = await capturer.capture_all(
                context.video_id,
                context.metadata.duration,
                output_dir,
                max_frames=max_frames,
                quality=quality,
                on_progress=on_progress,
            )

        context.screenshots = screenshots
        context.use_chapters = use_chapters
        context.report(PROGRESS_START + PROGRESS_SPAN)
