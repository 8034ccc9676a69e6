from __future__ import annotations

import logging

from tubedoc.pipeline.context import Phase, PipelineContext

logger = logging.getLogger(__name__)


class MetadataStage:
    name = "metadata"
    phase = Phase.METADATA

    async def execute(self, context: PipelineContext) -> None:
        context.report(5, "Fetching video info", status="fetching")
        metadata = await context.providers.youtube.get_metadata(context.url)

        max_duration = context.settings.processing.max_duration
        if metadata.duration > max_duration:
            logger.warning(
                "Video is %.0fs long, above the configured maximum of %ds; processing anyway",
                metadata.duration,
                max_duration,
            )

        context.metadata = metadata
        if metadata.id:
            context.video_id = metadata.id
        logger.info("Video: %s (%s, %.0fs)", metadata.title, metadata.channel, metadata.duration)
        context.report(10, f"Fetched: {metadata.title}", status="processing")
