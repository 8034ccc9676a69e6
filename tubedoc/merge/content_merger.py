"""Alignment of subtitle segments and screenshots into document sections."""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterable, Sequence

from tubedoc.models import Chapter, Screenshot, Section, SubtitleSegment

logger = logging.getLogger(__name__)


def combine_subtitle_text(texts: Iterable[str | SubtitleSegment]) -> str:
    """Join caption texts, collapsing rolling-caption repeats.

    Auto-generated captions often repeat the previous line or re-emit it with
    more words appended. Consecutive duplicates are dropped, and a line that
    extends the previous one replaces it.
    """

    combined: list[str] = []
    for item in texts:
        text = (item.text if isinstance(item, SubtitleSegment) else item).strip()
        if not text:
            continue
        if combined:
            previous = combined[-1]
            if text == previous or previous.startswith(text):
                continue
            if text.startswith(previous):
                combined[-1] = text
                continue
        combined.append(text)
    return " ".join(combined)


class ContentMerger:
    def merge(
        self,
        subtitles: Sequence[SubtitleSegment],
        screenshots: Sequence[Screenshot],
    ) -> list[Section]:
        """Build one section per screenshot from half-open time intervals.

        Screenshot ``i`` owns ``[t_i, t_{i+1})`` and the last one extends to
        the end of the video. Segments are assigned by start time; segments
        that start before the first screenshot belong to the first section.
        """

        if not screenshots or not subtitles:
            return []

        anchors = _unique_screenshots(screenshots)
        starts = [shot.timestamp for shot in anchors]
        buckets: list[list[SubtitleSegment]] = [[] for _ in anchors]

        for segment in subtitles:
            buckets[_bucket_index(starts, segment.start)].append(segment)

        sections = [
            Section(timestamp=shot.timestamp, screenshot=shot, subtitles=bucket)
            for shot, bucket in zip(anchors, buckets)
        ]
        logger.debug("Merged %d segments into %d sections", len(subtitles), len(sections))
        return sections

    def merge_with_chapters(
        self,
        subtitles: Sequence[SubtitleSegment],
        screenshots: Sequence[Screenshot],
        chapters: Sequence[Chapter],
    ) -> list[Section]:
        """Build one section per chapter, titled after the chapter."""

        if not screenshots or not subtitles or not chapters:
            return []

        ordered = _unique_chapters(chapters)
        shots = _unique_screenshots(screenshots)
        starts = [chapter.start_time for chapter in ordered]
        buckets: list[list[SubtitleSegment]] = [[] for _ in ordered]

        for segment in subtitles:
            buckets[_bucket_index(starts, segment.start)].append(segment)

        sections: list[Section] = []
        for chapter, bucket in zip(ordered, buckets):
            sections.append(
                Section(
                    timestamp=chapter.start_time,
                    screenshot=_screenshot_for(shots, chapter.start_time),
                    subtitles=bucket,
                    chapter_title=chapter.title,
                )
            )
        logger.debug("Merged %d segments into %d chapter sections", len(subtitles), len(sections))
        return sections

    def combine_subtitle_text(self, subtitles: Iterable[str | SubtitleSegment]) -> str:
        return combine_subtitle_text(subtitles)

    def group_by_chapter(self, sections: Sequence[Section], chapter_duration: float = 300) -> list[list[Section]]:
        """Group consecutive sections into buckets of roughly ``chapter_duration`` seconds."""

        groups: list[list[Section]] = []
        current: list[Section] = []
        group_start = 0.0

        for section in sections:
            if current and section.timestamp >= group_start + chapter_duration:
                groups.append(current)
                current = []
                group_start = section.timestamp
            current.append(section)

        if current:
            groups.append(current)
        return groups


def _bucket_index(starts: list[float], start_time: float) -> int:
    return max(bisect.bisect_right(starts, start_time) - 1, 0)


def _unique_screenshots(screenshots: Sequence[Screenshot]) -> list[Screenshot]:
    unique: list[Screenshot] = []
    for shot in sorted(screenshots, key=lambda s: s.timestamp):
        if unique and unique[-1].timestamp == shot.timestamp:
            continue
        unique.append(shot)
    return unique


def _unique_chapters(chapters: Sequence[Chapter]) -> list[Chapter]:
    unique: list[Chapter] = []
    for chapter in sorted(chapters, key=lambda c: c.start_time):
        if unique and unique[-1].start_time == chapter.start_time:
            continue
        unique.append(chapter)
    return unique


def _screenshot_for(shots: list[Screenshot], start_time: float) -> Screenshot:
    # first frame at or after the chapter start, else the closest one before it
    index = bisect.bisect_left([shot.timestamp for shot in shots], start_time)
    if index < len(shots):
        return shots[index]
    return shots[-1]
