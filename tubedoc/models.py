from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

BULLET_TAGS = ("METRIC", "TOOL", "TECHNIQUE", "DEFINITION", "INSIGHT")


@dataclass(frozen=True, slots=True)
class SubtitleSegment:
    """One caption line with its start/end offsets in seconds."""

    start: float
    end: float
    text: str


@dataclass(slots=True)
class Chapter:
    title: str
    start_time: float
    end_time: float | None = None


@dataclass(slots=True)
class Screenshot:
    timestamp: float
    image_path: str
    width: int
    height: int


@dataclass(slots=True)
class VideoMetadata:
    id: str
    title: str
    channel: str
    duration: float
    description: str = ""
    thumbnail: str = ""
    upload_date: str = ""
    view_count: int = 0
    chapters: list[Chapter] = field(default_factory=list)
    available_captions: list[str] = field(default_factory=list)
    video_type: str | None = None
    video_type_confidence: float | None = None


@dataclass(slots=True)
class SubtitleResult:
    source: str
    language: str
    segments: list[SubtitleSegment]

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "language": self.language,
            "segments": [{"start": s.start, "end": s.end, "text": s.text} for s in self.segments],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SubtitleResult:
        return cls(
            source=str(payload["source"]),
            language=str(payload["language"]),
            segments=[
                SubtitleSegment(start=float(row["start"]), end=float(row["end"]), text=str(row["text"]))
                for row in payload.get("segments", [])
            ],
        )


class SectionStatus(str, Enum):
    """How a section's enhancement was produced."""

    ENHANCED = "enhanced"
    DEGRADED = "degraded"
    SUMMARIZED = "summarized"
    RAW = "raw"
    SKIPPED = "skipped"


@dataclass(slots=True)
class NotableQuote:
    text: str
    speaker: str | None = None


@dataclass(slots=True)
class TaggedBullet:
    """A fact bullet such as ``[METRIC] 40% faster builds``."""

    text: str
    tag: str | None = None

    @classmethod
    def parse(cls, raw: str) -> TaggedBullet:
        stripped = raw.strip()
        if stripped.startswith("[") and "]" in stripped:
            tag, _, rest = stripped[1:].partition("]")
            if tag.strip().upper() in BULLET_TAGS:
                return cls(text=rest.strip(), tag=tag.strip().upper())
        return cls(text=stripped)

    def render(self) -> str:
        return f"[{self.tag}] {self.text}" if self.tag else self.text


@dataclass(slots=True)
class MainInformation:
    paragraphs: list[str] = field(default_factory=list)
    tagged_bullets: list[TaggedBullet] = field(default_factory=list)


@dataclass(slots=True)
class EnhancedSectionContent:
    """AI-derived content for one section, keyed by the section timestamp."""

    one_liner: str
    key_points: list[str]
    notable_quotes: list[NotableQuote]
    main_information: MainInformation
    translated_text: str
    status: SectionStatus = SectionStatus.ENHANCED

    @classmethod
    def fallback(cls, raw_text: str, status: SectionStatus = SectionStatus.DEGRADED) -> EnhancedSectionContent:
        return cls(
            one_liner="",
            key_points=[],
            notable_quotes=[],
            main_information=MainInformation(),
            translated_text=raw_text,
            status=status,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "one_liner": self.one_liner,
            "key_points": list(self.key_points),
            "notable_quotes": [{"text": q.text, "speaker": q.speaker} for q in self.notable_quotes],
            "main_information": {
                "paragraphs": list(self.main_information.paragraphs),
                "tagged_bullets": [{"tag": b.tag, "text": b.text} for b in self.main_information.tagged_bullets],
            },
            "translated_text": self.translated_text,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> EnhancedSectionContent:
        main = payload.get("main_information") or {}
        return cls(
            one_liner=str(payload.get("one_liner", "")),
            key_points=[str(point) for point in payload.get("key_points", [])],
            notable_quotes=[
                NotableQuote(text=str(row["text"]), speaker=row.get("speaker"))
                for row in payload.get("notable_quotes", [])
            ],
            main_information=MainInformation(
                paragraphs=[str(p) for p in main.get("paragraphs", [])],
                tagged_bullets=[
                    TaggedBullet(text=str(row["text"]), tag=row.get("tag"))
                    for row in main.get("tagged_bullets", [])
                ],
            ),
            translated_text=str(payload.get("translated_text", "")),
            status=SectionStatus(payload.get("status", SectionStatus.ENHANCED.value)),
        )


@dataclass(slots=True)
class SectionSummary:
    """Rendering view of a section's enhancement."""

    summary: str
    key_points: list[str]
    main_information: MainInformation | None = None
    notable_quotes: list[str] = field(default_factory=list)
    status: SectionStatus = SectionStatus.ENHANCED


@dataclass(slots=True)
class Section:
    timestamp: float
    screenshot: Screenshot
    subtitles: list[SubtitleSegment]
    chapter_title: str | None = None
    enhancement: EnhancedSectionContent | None = None

    @property
    def section_summary(self) -> SectionSummary | None:
        content = self.enhancement
        if content is None:
            return None
        return SectionSummary(
            summary=content.one_liner,
            key_points=list(content.key_points),
            main_information=content.main_information,
            notable_quotes=[quote.text for quote in content.notable_quotes],
            status=content.status,
        )


@dataclass(slots=True)
class ContentSummary:
    summary: str
    key_points: list[str]
    language: str
    placeholder: bool = False


@dataclass(slots=True)
class GlobalSummary:
    summary: str = ""
    key_points: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UnifiedProcessResult:
    sections: dict[float, EnhancedSectionContent]
    global_summary: GlobalSummary
    total_tokens_used: int
    from_cache: bool = False


@dataclass(slots=True)
class DocumentContent:
    """Everything the rendering layer needs for one video."""

    metadata: VideoMetadata
    sections: list[Section]
    summary: ContentSummary | None = None


@dataclass(slots=True)
class ConvertStats:
    pages: int
    file_size: int
    duration: float
    screenshot_count: int


@dataclass(slots=True)
class ConvertResult:
    success: bool
    output_path: Path
    metadata: VideoMetadata
    stats: ConvertStats


@dataclass(slots=True)
class PipelineState:
    status: str = "idle"
    current_step: str = ""
    progress: int = 0
