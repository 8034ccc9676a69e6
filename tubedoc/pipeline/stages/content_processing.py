"""Section alignment followed by the enhancement fallback chain."""

from __future__ import annotations

import logging

from tubedoc.ai.strategies import EnhancementOutcome, EnhancementStrategy, default_strategies
from tubedoc.merge.content_merger import ContentMerger, combine_subtitle_text
from tubedoc.models import ContentSummary, DocumentContent, EnhancedSectionContent, Section, SectionStatus
from tubedoc.pipeline.context import Phase, PipelineContext

logger = logging.getLogger(__name__)


class ContentProcessingStage:
    """Merge subtitles with screenshots and enhance every resulting section.

    Strategies run in order; the first one that applies and succeeds wins.
    A section the winning strategy did not cover gets a degraded fallback,
    so every section leaves this stage with exactly one enhancement.
    """

    name = "content-processing"
    phase = Phase.CONTENT

    def __init__(
        self,
        strategies: list[EnhancementStrategy] | None = None,
        merger: ContentMerger | None = None,
    ) -> None:
        self.strategies = strategies if strategies is not None else default_strategies()
        self.merger = merger or ContentMerger()

    async def execute(self, context: PipelineContext) -> None:
        context.report(75, "Merging content")
        segments = context.processed_segments
        if context.use_chapters:
            sections = self.merger.merge_with_chapters(segments, context.screenshots, context.chapters)
            logger.info("Merged content by chapter: %d sections", len(sections))
        else:
            sections = self.merger.merge(segments, context.screenshots)
            logger.info("Merged content: %d sections", len(sections))

        summary = context.summary
        if sections:
            sample_size = context.dev.ai_sample_sections if context.dev_mode else len(sections)
            to_process, to_skip = sections[:sample_size], sections[sample_size:]
            if to_skip:
                logger.info("Dev mode: enhancing %d of %d sections", len(to_process), len(sections))

            context.report(77, "Enhancing sections")
            outcome = await self._enhance(context, to_process)
            for section in to_process:
                section.enhancement = outcome.contents.get(section.timestamp) or EnhancedSectionContent.fallback(
                    combine_subtitle_text(section.subtitles)
                )
            for section in to_skip:
                section.enhancement = EnhancedSectionContent.fallback(
                    combine_subtitle_text(section.subtitles),
                    status=SectionStatus.SKIPPED,
                )

            global_summary = outcome.global_summary
            if summary is None and global_summary is not None and global_summary.summary:
                summary = ContentSummary(
                    summary=global_summary.summary,
                    key_points=list(global_summary.key_points),
                    language=context.settings.summary_language,
                )

        context.content = DocumentContent(metadata=context.metadata, sections=sections, summary=summary)

    async def _enhance(self, context: PipelineContext, sections: list[Section]) -> EnhancementOutcome:
        for strategy in self.strategies:
            if not strategy.can_apply(context):
                continue
            try:
                outcome = await strategy.apply(context, sections)
            except Exception as exc:
                logger.warning("Enhancement '%s' failed, trying the next one: %s", strategy.name, exc)
                continue
            logger.info(
                "Enhanced %d sections with '%s' (%d tokens%s)",
                len(outcome.contents),
                strategy.name,
                outcome.tokens_used,
                ", cached" if outcome.from_cache else "",
            )
            return outcome

        logger.warning("No enhancement strategy succeeded; keeping raw subtitles")
        return EnhancementOutcome(
            contents={
                section.timestamp: EnhancedSectionContent.fallback(
                    combine_subtitle_text(section.subtitles),
                    status=SectionStatus.RAW,
                )
                for section in sections
            }
        )
