from __future__ import annotations

import logging

from tubedoc.errors import TubedocError
from tubedoc.models import ContentSummary
from tubedoc.pipeline.context import Phase, PipelineContext

logger = logging.getLogger(__name__)


class SummaryStage:
    """Whole-video analysis: video type and an optional overall summary."""

    name = "summary"
    phase = Phase.SUMMARY

    async def execute(self, context: PipelineContext) -> None:
        ai = context.providers.ai
        segments = context.processed_segments
        metadata = context.metadata
        language = context.settings.summary_language

        if ai is not None and segments:
            context.report(34, "Classifying video type")
            sample = " ".join(segment.text for segment in segments[:10])
            video_type = await ai.classify_video_type(metadata, sample)
            metadata.video_type = video_type.type
            metadata.video_type_confidence = video_type.confidence
            logger.info("Video type: %s (%.0f%%)", video_type.type, video_type.confidence * 100)

        summary: ContentSummary | None = None
        settings = context.settings.summary
        if settings.enabled and ai is not None and segments:
            if context.dev_mode:
                logger.info("Dev mode: storing a placeholder summary")
                summary = ContentSummary(summary="", key_points=[], language=language, placeholder=True)
            else:
                context.report(36, "Generating summary")
                try:
                    summary = await ai.summarize(
                        segments,
                        max_length=settings.max_length,
                        language=language,
                        style=settings.style,
                    )
                except TubedocError as exc:
                    logger.warning("Summary generation failed: %s", exc)

        context.summary = summary
