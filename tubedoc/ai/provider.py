from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from tubedoc.ai.llm import ChatClient, LLMRequestError
from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.merge.content_merger import combine_subtitle_text
from tubedoc.models import Chapter, ContentSummary, Section, SubtitleSegment, VideoMetadata
from tubedoc.text import format_timestamp, hangul_ratio, language_name, sanitize_ai_text

logger = logging.getLogger(__name__)

TRANSLATION_BATCH_SIZE = 50
MIN_HANGUL_RATIO = 0.5
TOPIC_BLOCK_SECONDS = 30
MAX_TOPIC_BLOCKS = 40
VIDEO_TYPES = ("conference_talk", "tutorial", "interview", "lecture", "demo", "discussion", "unknown")

_SUMMARY_RE = re.compile(r"SUMMARY:\s*([\s\S]*?)(?=KEY_POINTS:|$)", re.IGNORECASE)
_KEY_POINTS_RE = re.compile(r"KEY_POINTS:\s*([\s\S]*?)$", re.IGNORECASE)
_NUMBERED_LINE_RE = re.compile(r"^\[(\d+)\]\s*(.+)$")
_BULLET_PREFIX_RE = re.compile(r"^[-•*]\s*")


@dataclass(slots=True)
class SectionDigest:
    timestamp: float
    summary: str = ""
    key_points: list[str] = field(default_factory=list)


@dataclass(slots=True)
class VideoTypeResult:
    type: str
    confidence: float


class AIProvider:
    """Single-purpose LLM calls: summaries, translation, chapters and classification."""

    def __init__(self, client: ChatClient) -> None:
        self.client = client

    async def summarize(
        self,
        segments: list[SubtitleSegment],
        *,
        max_length: int = 500,
        language: str = "ko",
        style: str = "brief",
    ) -> ContentSummary:
        full_text = " ".join(segment.text for segment in segments).strip()
        if not full_text:
            return ContentSummary(summary="", key_points=[], language=language)

        style_hint = (
            "Write a detailed, comprehensive summary."
            if style == "detailed"
            else "Keep the summary short and focused on the essentials."
        )
        messages = [
            {
                "role": "system",
                "content": (
                    f"You summarize video transcripts in {language_name(language)}. {style_hint}\n"
                    "Answer in exactly this format:\n"
                    "SUMMARY:\n[summary]\n\nKEY_POINTS:\n- [point 1]\n- [point 2]\n- [point 3]"
                ),
            },
            {
                "role": "user",
                "content": f"Summarize this transcript in at most {max_length} characters:\n\n{full_text}",
            },
        ]

        try:
            completion = await self.client.complete(messages, temperature=0.3, max_tokens=1000)
        except LLMRequestError as exc:
            raise TubedocError(ErrorCode.AI_REQUEST_FAILED, f"Summary request failed: {exc}") from exc

        content = completion.content
        summary_match = _SUMMARY_RE.search(content)
        points_match = _KEY_POINTS_RE.search(content)
        summary = sanitize_ai_text(summary_match.group(1).strip()) if summary_match else content.strip()
        key_points = _bullet_lines(points_match.group(1)) if points_match else []
        logger.debug("Summary ready: %d chars, %d key points", len(summary), len(key_points))
        return ContentSummary(summary=summary, key_points=key_points, language=language)

    async def summarize_sections(
        self,
        sections: list[Section],
        *,
        language: str = "ko",
        max_summary_length: int = 150,
        max_key_points: int = 3,
    ) -> list[SectionDigest]:
        """One short summary per section; a failed request yields empty digests."""

        if not sections:
            return []

        blocks = [
            f"[SECTION {index}] ({format_timestamp(section.timestamp)})\n{combine_subtitle_text(section.subtitles)}"
            for index, section in enumerate(sections)
        ]
        point_lines = "\n".join(f"- (key point {n})" for n in range(1, max_key_points + 1))
        messages = [
            {
                "role": "system",
                "content": (
                    f"You analyse video sections. Summarize each one in {language_name(language)}.\n"
                    "For every [SECTION n] answer:\n"
                    f"[SECTION n]\nSUMMARY: (at most {max_summary_length} characters)\nPOINTS:\n{point_lines}"
                ),
            },
            {"role": "user", "content": "Summarize each of these sections:\n\n" + "\n\n".join(blocks)},
        ]

        try:
            completion = await self.client.complete(
                messages,
                temperature=0.3,
                max_tokens=min(4000, len(sections) * 300),
            )
        except LLMRequestError as exc:
            logger.warning("Section summaries failed: %s", exc)
            return [SectionDigest(timestamp=section.timestamp) for section in sections]

        digests: list[SectionDigest] = []
        for index, section in enumerate(sections):
            pattern = re.compile(
                rf"\[SECTION\s*{index}\][\s\S]*?SUMMARY:\s*([^\n]+)[\s\S]*?POINTS:\s*([\s\S]*?)(?=\[SECTION\s*{index + 1}\]|$)",
                re.IGNORECASE,
            )
            match = pattern.search(completion.content)
            if match is None:
                digests.append(SectionDigest(timestamp=section.timestamp))
                continue
            digests.append(
                SectionDigest(
                    timestamp=section.timestamp,
                    summary=sanitize_ai_text(match.group(1).strip()),
                    key_points=_bullet_lines(match.group(2))[:max_key_points],
                )
            )

        logger.debug("Section summaries: %d/%d parsed", sum(1 for d in digests if d.summary), len(sections))
        return digests

    async def translate(
        self,
        segments: list[SubtitleSegment],
        *,
        target_language: str,
        source_language: str | None = None,
    ) -> list[SubtitleSegment]:
        """Translate segment texts in numbered batches, keeping timings."""

        if not segments:
            return []

        target = language_name(target_language)
        source = language_name(source_language) if source_language else "the source language"
        system_prompt = (
            f"You are a professional subtitle translator. Translate from {source} into {target}.\n"
            "Rules:\n"
            "1. Keep the [number] marker at the start of every line.\n"
            f"2. Write only {target}; never copy the original text.\n"
            f"3. Transliterate or explain proper nouns and technical terms in {target}."
        )

        translated: list[SubtitleSegment] = []
        for offset in range(0, len(segments), TRANSLATION_BATCH_SIZE):
            batch = segments[offset : offset + TRANSLATION_BATCH_SIZE]
            numbered = "\n".join(f"[{index}] {segment.text}" for index, segment in enumerate(batch))
            try:
                completion = await self.client.complete(
                    [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": numbered},
                    ],
                    temperature=0.3,
                    max_tokens=4000,
                )
            except LLMRequestError as exc:
                raise TubedocError(ErrorCode.AI_REQUEST_FAILED, f"Translation request failed: {exc}") from exc

            lines: dict[int, str] = {}
            for line in completion.content.splitlines():
                match = _NUMBERED_LINE_RE.match(line.strip())
                if match:
                    lines[int(match.group(1))] = match.group(2).strip()

            for index, original in enumerate(batch):
                text = lines.get(index)
                if not text:
                    logger.warning("Translation line %d missing; keeping original text", offset + index)
                    text = original.text
                elif target_language == "ko":
                    text = await self._ensure_korean(original.text, text)
                translated.append(SubtitleSegment(start=original.start, end=original.end, text=text))

        logger.debug("Translated %d segments into %s", len(translated), target_language)
        return translated

    async def _ensure_korean(self, original: str, translated: str) -> str:
        letters = re.sub(r"[\s\d\W]", "", translated)
        if len(letters) <= 5 or hangul_ratio(translated) >= MIN_HANGUL_RATIO:
            return translated

        logger.warning("Translation mixes languages (%.0f%% Hangul); retrying once", hangul_ratio(translated) * 100)
        try:
            completion = await self.client.complete(
                [
                    {
                        "role": "system",
                        "content": "The previous translation mixed in English. Translate into Korean only.",
                    },
                    {"role": "user", "content": f"Translate into Korean: {original}"},
                ],
                temperature=0.2,
                max_tokens=500,
            )
        except LLMRequestError as exc:
            logger.warning("Translation retry failed; keeping original text: %s", exc)
            return original

        retried = completion.content.strip()
        if retried and hangul_ratio(retried) >= MIN_HANGUL_RATIO:
            return retried
        return original

    async def detect_topic_shifts(
        self,
        segments: list[SubtitleSegment],
        *,
        min_chapter_length: float = 60,
        max_chapters: int = 20,
        language: str = "ko",
    ) -> list[Chapter]:
        """Propose chapters from topic changes; any failure yields no chapters."""

        if not segments:
            return []

        blocks = _time_blocks(segments, TOPIC_BLOCK_SECONDS)
        if len(blocks) > MAX_TOPIC_BLOCKS:
            step = math.ceil(len(blocks) / MAX_TOPIC_BLOCKS)
            blocks = blocks[::step]
        blocks_text = "\n\n".join(f"[{format_timestamp(start)}] {text[:200]}" for start, text in blocks)

        prompt = (
            "Below is a video transcript. Detect where the topic changes and propose chapters.\n\n"
            f"Transcript:\n{blocks_text}\n\n"
            f"Requirements:\n- Minimum chapter length: {min_chapter_length:g} seconds\n"
            f"- At most {max_chapters} chapters\n- Chapter titles in {language_name(language)}\n\n"
            'Answer with a JSON array only: [{"title": "Chapter title", "startTime": 0}, ...]\n'
            "startTime is a number of seconds."
        )
        try:
            completion = await self.client.complete(
                [
                    {"role": "system", "content": "You detect topic changes in videos. Reply with a JSON array only."},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                max_tokens=2000,
            )
            match = re.search(r"\[[\s\S]*\]", completion.content)
            if match is None:
                logger.warning("Chapter detection reply held no JSON array")
                return []
            items = json.loads(match.group(0))
        except (LLMRequestError, json.JSONDecodeError) as exc:
            logger.warning("Chapter detection failed: %s", exc)
            return []

        proposals = [
            item
            for item in items
            if isinstance(item, dict)
            and isinstance(item.get("startTime"), int | float)
            and not isinstance(item.get("startTime"), bool)
            and item.get("title")
        ]
        last_end = segments[-1].end
        chapters: list[Chapter] = []
        for index, item in enumerate(proposals):
            start = float(item["startTime"])
            end = float(proposals[index + 1]["startTime"]) if index + 1 < len(proposals) else last_end
            if end - start >= min_chapter_length:
                chapters.append(Chapter(title=str(item["title"]).strip(), start_time=start, end_time=end))

        logger.debug("Detected %d topic chapters", len(chapters[:max_chapters]))
        return chapters[:max_chapters]

    async def classify_video_type(self, metadata: VideoMetadata, subtitle_sample: str) -> VideoTypeResult:
        prompt = (
            "Classify this YouTube video.\n\n"
            f"Title: {metadata.title}\nChannel: {metadata.channel}\n"
            f"Description: {metadata.description[:500]}\n\n"
            f"Transcript sample:\n{subtitle_sample[:500]}\n\n"
            f"Choose one type: {', '.join(VIDEO_TYPES)}.\n"
            'Answer with JSON only: {"type": "...", "confidence": 0.0}'
        )
        try:
            completion = await self.client.complete(
                [
                    {"role": "system", "content": "You classify YouTube videos. Reply with JSON only."},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.1,
                max_tokens=100,
            )
            match = re.search(r"\{[^}]+\}", completion.content)
            if match is None:
                return VideoTypeResult(type="unknown", confidence=0.0)
            parsed: dict[str, Any] = json.loads(match.group(0))
        except (LLMRequestError, json.JSONDecodeError) as exc:
            logger.warning("Video type classification failed: %s", exc)
            return VideoTypeResult(type="unknown", confidence=0.0)

        video_type = parsed.get("type") if parsed.get("type") in VIDEO_TYPES else "unknown"
        confidence = parsed.get("confidence")
        if isinstance(confidence, int | float) and not isinstance(confidence, bool):
            confidence = min(1.0, max(0.0, float(confidence)))
        else:
            confidence = 0.5
        logger.debug("Video type: %s (confidence %.2f)", video_type, confidence)
        return VideoTypeResult(type=str(video_type), confidence=confidence)


def _bullet_lines(block: str) -> list[str]:
    lines = (sanitize_ai_text(_BULLET_PREFIX_RE.sub("", line).strip()) for line in block.splitlines())
    return [line for line in lines if line]


def _time_blocks(segments: list[SubtitleSegment], span: float) -> list[tuple[float, str]]:
    blocks: list[tuple[float, str]] = []
    block_start = segments[0].start
    texts = [segments[0].text]
    for segment in segments[1:]:
        if segment.start - block_start > span:
            blocks.append((block_start, " ".join(texts)))
            block_start = segment.start
            texts = [segment.text]
        else:
            texts.append(segment.text)
    blocks.append((block_start, " ".join(texts)))
    return blocks
