"""Ordered ways of enhancing sections, from richest to plain subtitles."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from tubedoc.ai.unified import UnifiedProcessOptions
from tubedoc.merge.content_merger import combine_subtitle_text
from tubedoc.models import EnhancedSectionContent, GlobalSummary, MainInformation, Section, SectionStatus

if TYPE_CHECKING:
    from tubedoc.pipeline.context import PipelineContext


@dataclass(slots=True)
class EnhancementOutcome:
    contents: dict[float, EnhancedSectionContent]
    global_summary: GlobalSummary | None = None
    tokens_used: int = 0
    from_cache: bool = False


class EnhancementStrategy(Protocol):
    name: str

    def can_apply(self, context: PipelineContext) -> bool: ...

    async def apply(self, context: PipelineContext, sections: list[Section]) -> EnhancementOutcome: ...


def _per_section_summaries_enabled(context: PipelineContext) -> bool:
    summary = context.settings.summary
    return summary.enabled and summary.per_section


class UnifiedEnhancement:
    """Translation, key points, tagged facts and quotes in batched requests."""

    name = "unified"

    def can_apply(self, context: PipelineContext) -> bool:
        return context.providers.unified is not None and _per_section_summaries_enabled(context)

    async def apply(self, context: PipelineContext, sections: list[Section]) -> EnhancementOutcome:
        processor = context.providers.unified
        assert processor is not None
        settings = context.settings
        options = UnifiedProcessOptions(
            video_id=context.video_id,
            source_language=context.subtitles.language or "en",
            target_language=settings.summary_language,
            max_key_points=settings.summary.section_key_points,
            include_quotes=True,
            enable_cache=settings.cache.enabled,
            include_global_summary=not (context.dev_mode and context.dev.skip_global_summary),
        )
        result = await processor.process_all_sections(sections, options)
        return EnhancementOutcome(
            contents=dict(result.sections),
            global_summary=result.global_summary,
            tokens_used=result.total_tokens_used,
            from_cache=result.from_cache,
        )


class SectionSummaryEnhancement:
    """One-line summary and key points per section, without translation."""

    name = "section-summary"

    def can_apply(self, context: PipelineContext) -> bool:
        return context.providers.ai is not None and _per_section_summaries_enabled(context)

    async def apply(self, context: PipelineContext, sections: list[Section]) -> EnhancementOutcome:
        provider = context.providers.ai
        assert provider is not None
        settings = context.settings.summary
        digests = await provider.summarize_sections(
            sections,
            language=context.settings.summary_language,
            max_summary_length=settings.section_max_length,
            max_key_points=settings.section_key_points,
        )
        if not any(digest.summary for digest in digests):
            raise RuntimeError("section summarizer returned no usable summaries")

        contents: dict[float, EnhancedSectionContent] = {}
        for section, digest in zip(sections, digests):
            raw_text = combine_subtitle_text(section.subtitles)
            if not digest.summary:
                contents[section.timestamp] = EnhancedSectionContent.fallback(raw_text)
                continue
            contents[section.timestamp] = EnhancedSectionContent(
                one_liner=digest.summary,
                key_points=list(digest.key_points),
                notable_quotes=[],
                main_information=MainInformation(),
                translated_text=raw_text,
                status=SectionStatus.SUMMARIZED,
            )
        return EnhancementOutcome(contents=contents)


class RawSubtitleEnhancement:
    name = "raw"

    def can_apply(self, context: PipelineContext) -> bool:
        return True

    async def apply(self, context: PipelineContext, sections: list[Section]) -> EnhancementOutcome:
        return EnhancementOutcome(
            contents={
                section.timestamp: EnhancedSectionContent.fallback(
                    combine_subtitle_text(section.subtitles),
                    status=SectionStatus.RAW,
                )
                for section in sections
            }
        )


def default_strategies() -> list[EnhancementStrategy]:
    return [UnifiedEnhancement(), SectionSummaryEnhancement(), RawSubtitleEnhancement()]
