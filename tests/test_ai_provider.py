from __future__ import annotations

from typing import Any

import pytest

from tubedoc.ai.llm import ChatCompletion, LLMRequestError
from tubedoc.ai.provider import AIProvider
from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.models import Screenshot, Section, SubtitleSegment, VideoMetadata


class _FakeClient:
    def __init__(self, replies: list[str | Exception]) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 1000,
        json_mode: bool = False,
    ) -> ChatCompletion:
        self.calls.append({"messages": messages, "max_tokens": max_tokens})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ChatCompletion(content=reply, total_tokens=1)


def _segments(*texts: str, step: float = 10) -> list[SubtitleSegment]:
    return [SubtitleSegment(start=i * step, end=i * step + step, text=text) for i, text in enumerate(texts)]


def _metadata() -> VideoMetadata:
    return VideoMetadata(id="vid", title="Caching talk", channel="Conf", duration=600)


@pytest.mark.asyncio
async def test_summarize_parses_summary_and_key_points() -> None:
    client = _FakeClient(["SUMMARY:\nA talk about caches.\n\nKEY_POINTS:\n- TTLs\n- Invalidation\n* Warmup"])

    summary = await AIProvider(client).summarize(_segments("hello", "world"), language="en")

    assert summary.summary == "A talk about caches."
    assert summary.key_points == ["TTLs", "Invalidation", "Warmup"]
    assert summary.language == "en"


@pytest.mark.asyncio
async def test_summarize_without_markers_uses_raw_reply() -> None:
    summary = await AIProvider(_FakeClient(["Just a plain answer."])).summarize(_segments("x"))

    assert summary.summary == "Just a plain answer."
    assert summary.key_points == []


@pytest.mark.asyncio
async def test_summarize_wraps_request_errors() -> None:
    provider = AIProvider(_FakeClient([LLMRequestError("boom")]))

    with pytest.raises(TubedocError) as exc_info:
        await provider.summarize(_segments("x"))

    assert exc_info.value.code is ErrorCode.AI_REQUEST_FAILED


@pytest.mark.asyncio
async def test_summarize_sections_parses_each_block() -> None:
    shot = Screenshot(timestamp=0, image_path="/tmp/a.jpg", width=1, height=1)
    sections = [
        Section(timestamp=0, screenshot=shot, subtitles=_segments("intro")),
        Section(timestamp=60, screenshot=shot, subtitles=_segments("outro")),
    ]
    reply = (
        "[SECTION 0]\nSUMMARY: Opening remarks\nPOINTS:\n- hello\n- agenda\n\n"
        "[SECTION 1]\nSUMMARY: Closing\nPOINTS:\n- thanks"
    )

    digests = await AIProvider(_FakeClient([reply])).summarize_sections(sections, max_key_points=1)

    assert [digest.summary for digest in digests] == ["Opening remarks", "Closing"]
    assert digests[0].key_points == ["hello"]
    assert digests[1].timestamp == 60


@pytest.mark.asyncio
async def test_summarize_sections_returns_empty_digests_on_failure() -> None:
    shot = Screenshot(timestamp=0, image_path="/tmp/a.jpg", width=1, height=1)
    sections = [Section(timestamp=0, screenshot=shot, subtitles=_segments("intro"))]

    digests = await AIProvider(_FakeClient([LLMRequestError("down")])).summarize_sections(sections)

    assert len(digests) == 1
    assert digests[0].summary == ""


@pytest.mark.asyncio
async def test_translate_keeps_timings_and_missing_lines() -> None:
    client = _FakeClient(["[0] Bonjour\n[2] Au revoir"])
    segments = _segments("Hello", "Thanks", "Goodbye")

    translated = await AIProvider(client).translate(segments, target_language="fr", source_language="en")

    assert [segment.text for segment in translated] == ["Bonjour", "Thanks", "Au revoir"]
    assert [segment.start for segment in translated] == [0, 10, 20]


@pytest.mark.asyncio
async def test_translate_sends_batches_of_fifty() -> None:
    segments = _segments(*[f"line {i}" for i in range(120)])
    replies = [
        "\n".join(f"[{i}] ligne" for i in range(50)),
        "\n".join(f"[{i}] ligne" for i in range(50)),
        "\n".join(f"[{i}] ligne" for i in range(20)),
    ]
    client = _FakeClient(replies)

    translated = await AIProvider(client).translate(segments, target_language="fr")

    assert len(client.calls) == 3
    assert len(translated) == 120


@pytest.mark.asyncio
async def test_translate_to_korean_retries_mixed_language_line_once() -> None:
    client = _FakeClient(["[0] This is still English text", "여전히 영어입니다"])

    translated = await AIProvider(client).translate(_segments("This is English text"), target_language="ko")

    assert len(client.calls) == 2
    assert translated[0].text == "여전히 영어입니다"


@pytest.mark.asyncio
async def test_translate_to_korean_keeps_original_when_retry_does_not_help() -> None:
    client = _FakeClient(["[0] This is still English text", "Still English after retry"])

    translated = await AIProvider(client).translate(_segments("This is English text"), target_language="ko")

    assert translated[0].text == "This is English text"


@pytest.mark.asyncio
async def test_detect_topic_shifts_filters_short_chapters() -> None:
    segments = _segments(*[f"text {i}" for i in range(30)], step=10)
    reply = (
        'Chapters: [{"title": "Intro", "startTime": 0}, {"title": "Blip", "startTime": 100},'
        ' {"title": "Main", "startTime": 120}, {"title": "bad"}]'
    )

    chapters = await AIProvider(_FakeClient([reply])).detect_topic_shifts(segments, min_chapter_length=60)

    assert [(chapter.title, chapter.start_time, chapter.end_time) for chapter in chapters] == [
        ("Intro", 0.0, 100.0),
        ("Main", 120.0, 300.0),
    ]


@pytest.mark.asyncio
async def test_detect_topic_shifts_returns_nothing_on_bad_reply() -> None:
    chapters = await AIProvider(_FakeClient(["no chapters here"])).detect_topic_shifts(_segments("a", "b"))

    assert chapters == []


@pytest.mark.asyncio
async def test_classify_video_type_clamps_confidence() -> None:
    result = await AIProvider(_FakeClient(['{"type": "tutorial", "confidence": 1.7}'])).classify_video_type(
        _metadata(), "sample"
    )

    assert result.type == "tutorial"
    assert result.confidence == 1.0


@pytest.mark.asyncio
async def test_classify_video_type_defaults_for_unknown_values() -> None:
    result = await AIProvider(_FakeClient(['{"type": "vlog"}'])).classify_video_type(_metadata(), "sample")

    assert result.type == "unknown"
    assert result.confidence == pytest.approx(0.5)
