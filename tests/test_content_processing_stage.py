from __future__ import annotations

import pytest

from tubedoc.ai.strategies import EnhancementOutcome, RawSubtitleEnhancement
from tubedoc.models import (
    Chapter,
    ContentSummary,
    EnhancedSectionContent,
    MainInformation,
    PipelineState,
    Screenshot,
    SectionStatus,
    SubtitleResult,
)
from tubedoc.pipeline.context import Phase
from tubedoc.pipeline.stages.content_processing import ContentProcessingStage


def _shots(*timestamps: float) -> list[Screenshot]:
    return [Screenshot(timestamp=t, image_path=f"/tmp/{int(t)}.jpg", width=854, height=480) for t in timestamps]


@pytest.fixture
def build_context(settings, providers, youtube, make_context):
    def _build(*, screenshots=None, chapters=None, summary=None, states=None):
        segments = youtube.captions["en"]
        context = make_context(
            settings,
            providers,
            phase=Phase.SCREENSHOTS,
            states=states,
            metadata=youtube.metadata,
            subtitles=SubtitleResult(source="youtube", language="en", segments=segments),
            processed_segments=segments,
            chapters=chapters or [],
            summary=summary,
            screenshots=_shots(0, 60, 120) if screenshots is None else screenshots,
            use_chapters=bool(chapters),
        )
        return context

    return _build


def _statuses(context) -> list[SectionStatus]:
    return [section.enhancement.status for section in context.content.sections]


@pytest.mark.asyncio
async def test_unified_processor_enhances_every_section(
    settings, providers, fake_unified_factory, build_context
) -> None:
    settings.summary.enabled = True
    unified = fake_unified_factory()
    providers.unified = unified
    states: list[PipelineState] = []
    context = build_context(states=states)

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert _statuses(context) == [SectionStatus.ENHANCED] * 3
    assert [section.section_summary.summary for section in context.content.sections] == [
        "unified 0",
        "unified 60",
        "unified 120",
    ]
    assert [len(section.subtitles) for section in context.content.sections] == [2, 2, 2]
    assert context.content.summary is None
    assert unified.options[0].include_global_summary is True
    assert [state.progress for state in states] == [75, 77]


@pytest.mark.asyncio
async def test_global_summary_becomes_document_summary(
    settings, providers, fake_unified_factory, build_context
) -> None:
    settings.summary.enabled = True
    providers.unified = fake_unified_factory(global_summary="Whole video")
    context = build_context()

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert context.content.summary is not None
    assert context.content.summary.summary == "Whole video"
    assert context.content.summary.key_points == ["g"]
    assert context.content.summary.language == "ko"


@pytest.mark.asyncio
async def test_existing_summary_is_kept(settings, providers, fake_unified_factory, build_context) -> None:
    settings.summary.enabled = True
    providers.unified = fake_unified_factory(global_summary="Whole video")
    existing = ContentSummary(summary="From summary stage", key_points=[], language="ko")
    context = build_context(summary=existing)

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert context.content.summary is existing


@pytest.mark.asyncio
async def test_falls_back_to_section_summaries_when_unified_fails(
    settings, providers, fake_ai, fake_unified_factory, build_context
) -> None:
    settings.summary.enabled = True
    providers.unified = fake_unified_factory(fail=True)
    providers.ai = fake_ai
    context = build_context()

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert _statuses(context) == [SectionStatus.SUMMARIZED] * 3
    assert context.content.sections[1].enhancement.one_liner == "digest 60"
    assert context.content.sections[1].enhancement.translated_text == "line 2 line 3"


@pytest.mark.asyncio
async def test_falls_back_to_raw_subtitles_when_every_ai_layer_fails(
    settings, providers, fake_ai, fake_unified_factory, build_context
) -> None:
    settings.summary.enabled = True
    fake_ai.fail_sections = True
    providers.unified = fake_unified_factory(fail=True)
    providers.ai = fake_ai
    context = build_context()

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert _statuses(context) == [SectionStatus.RAW] * 3
    assert context.content.sections[0].enhancement.translated_text == "line 0 line 1"


@pytest.mark.asyncio
async def test_disabled_summaries_skip_ai_layers(settings, providers, fake_unified_factory, build_context) -> None:
    unified = fake_unified_factory()
    providers.unified = unified
    context = build_context()

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert _statuses(context) == [SectionStatus.RAW] * 3
    assert unified.received == []


@pytest.mark.asyncio
async def test_dev_mode_samples_first_section_only(settings, providers, fake_unified_factory, build_context) -> None:
    settings.summary.enabled = True
    settings.dev.enabled = True
    unified = fake_unified_factory(global_summary="ignored")
    providers.unified = unified
    context = build_context()

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert [[s.timestamp for s in batch] for batch in unified.received] == [[0]]
    assert unified.options[0].include_global_summary is False
    assert _statuses(context) == [SectionStatus.ENHANCED, SectionStatus.SKIPPED, SectionStatus.SKIPPED]
    skipped = context.content.sections[1].enhancement
    assert skipped.one_liner == ""
    assert skipped.key_points == []


@pytest.mark.asyncio
async def test_sections_missing_from_outcome_get_degraded_fallback(settings, build_context) -> None:
    class _PartialStrategy:
        name = "partial"

        def can_apply(self, context) -> bool:
            return True

        async def apply(self, context, sections) -> EnhancementOutcome:
            first = sections[0]
            return EnhancementOutcome(
                contents={
                    first.timestamp: EnhancedSectionContent(
                        one_liner="only first",
                        key_points=[],
                        notable_quotes=[],
                        main_information=MainInformation(),
                        translated_text="x",
                    )
                }
            )

    context = build_context()

    await ContentProcessingStage(strategies=[_PartialStrategy(), RawSubtitleEnhancement()]).execute(context)
    context.complete(Phase.CONTENT)

    assert _statuses(context) == [SectionStatus.ENHANCED, SectionStatus.DEGRADED, SectionStatus.DEGRADED]


@pytest.mark.asyncio
async def test_chapter_sections_are_used_when_chapters_drove_screenshots(settings, build_context) -> None:
    chapters = [Chapter(title="Opening", start_time=0), Chapter(title="Details", start_time=100)]
    context = build_context(screenshots=_shots(0, 100), chapters=chapters)

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert [section.chapter_title for section in context.content.sections] == ["Opening", "Details"]
    assert [len(section.subtitles) for section in context.content.sections] == [4, 2]


@pytest.mark.asyncio
async def test_no_screenshots_means_no_sections(settings, providers, fake_unified_factory, build_context) -> None:
    settings.summary.enabled = True
    unified = fake_unified_factory()
    providers.unified = unified
    context = build_context(screenshots=[])

    await ContentProcessingStage().execute(context)
    context.complete(Phase.CONTENT)

    assert context.content.sections == []
    assert unified.received == []


@pytest.mark.asyncio
async def test_unexpected_strategy_error_falls_through_to_next_strategy(settings, build_context) -> None:
    class _BrokenStrategy:
        name = "broken"

        def can_apply(self, context) -> bool:
            return True

        async def apply(self, context, sections) -> EnhancementOutcome:
            raise AttributeError("'str' object has no attribute 'get'")

    context = build_context()

    await ContentProcessingStage(strategies=[_BrokenStrategy(), RawSubtitleEnhancement()]).execute(context)
    context.complete(Phase.CONTENT)

    assert _statuses(context) == [SectionStatus.RAW] * 3
    assert context.content.sections[0].enhancement.translated_text == "line 0 line 1"
