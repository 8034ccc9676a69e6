from __future__ import annotations

import logging

from tubedoc.models import Chapter
from tubedoc.pipeline.context import Phase, PipelineContext

logger = logging.getLogger(__name__)


class ChapterStage:
    """Pick author chapters when present, otherwise ask the AI for topic shifts."""

    name = "chapters"
    phase = Phase.CHAPTERS

    async def execute(self, context: PipelineContext) -> None:
        settings = context.settings.chapter
        metadata = context.metadata
        segments = context.processed_segments
        max_chapters = context.dev.max_chapters if context.dev_mode else settings.max_chapters

        chapters: list[Chapter] = []
        if settings.use_youtube_chapters and metadata.chapters:
            chapters = list(metadata.chapters)
            logger.info("Using %d YouTube chapters", len(chapters))
        elif settings.auto_generate and context.providers.ai is not None and segments:
            context.report(33, "Detecting chapters")
            chapters = await context.providers.ai.detect_topic_shifts(
                segments,
                min_chapter_length=settings.min_chapter_length,
                max_chapters=max_chapters,
                language=context.settings.summary_language,
            )
            logger.info("Generated %d chapters from topic shifts", len(chapters))
            if chapters and not metadata.chapters:
                metadata.chapters = list(chapters)

        if context.dev_mode and len(chapters) > max_chapters:
            logger.info("Dev mode: keeping %d of %d chapters", max_chapters, len(chapters))
            chapters = chapters[:max_chapters]

        context.chapters = chapters
