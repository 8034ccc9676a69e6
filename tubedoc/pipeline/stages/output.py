from __future__ import annotations

import logging

from tubedoc.export import export_document
from tubedoc.models import ConvertResult, ConvertStats
from tubedoc.pipeline.context import Phase, PipelineContext
from tubedoc.text import apply_filename_pattern, date_string, timestamp_string

logger = logging.getLogger(__name__)


class OutputStage:
    name = "output"
    phase = Phase.OUTPUT

    async def execute(self, context: PipelineContext) -> None:
        context.report(80, "Generating output", status="generating")
        settings = context.settings.output
        content = context.content
        metadata = content.metadata

        filename = apply_filename_pattern(
            settings.filename_pattern,
            {
                "date": date_string(),
                "timestamp": timestamp_string(),
                "index": f"{context.index:03d}",
                "title": metadata.title,
                "channel": metadata.channel,
                "id": metadata.id,
            },
        )
        output_dir = settings.directory.expanduser()
        output_path = export_document(content, output_dir / f"{filename}.json")

        renderer = context.providers.renderer
        if renderer is not None and settings.format != "json":
            output_path = renderer.render(content, output_dir / f"{filename}.{settings.format}")
        elif settings.format != "json":
            logger.warning("No renderer registered for %s output; wrote JSON only", settings.format)

        context.result = ConvertResult(
            success=True,
            output_path=output_path,
            metadata=metadata,
            stats=ConvertStats(
                pages=len(content.sections),
                file_size=output_path.stat().st_size,
                duration=metadata.duration,
                screenshot_count=len(context.screenshots),
            ),
        )
        logger.info("Wrote %s", output_path)
        context.report(100, "Complete", status="complete")
