from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from tubedoc.merge.content_merger import combine_subtitle_text
from tubedoc.models import (
    Chapter,
    ContentSummary,
    DocumentContent,
    EnhancedSectionContent,
    Screenshot,
    Section,
    SubtitleSegment,
    VideoMetadata,
)


def export_document(content: DocumentContent, output_path: str | Path) -> Path:
    """Write the document contract handed to renderers as JSON."""

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document_to_dict(content), indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def document_to_dict(content: DocumentContent) -> dict[str, Any]:
    return {
        "metadata": asdict(content.metadata),
        "summary": asdict(content.summary) if content.summary else None,
        "sections": [_section_to_dict(section) for section in content.sections],
    }


def load_document(path: str | Path) -> DocumentContent:
    """Load a document contract written by ``export_document``."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Document JSON must contain an object.")

    metadata_payload = dict(payload["metadata"])
    metadata_payload["chapters"] = [Chapter(**row) for row in metadata_payload.get("chapters", [])]
    summary_payload = payload.get("summary")

    return DocumentContent(
        metadata=VideoMetadata(**metadata_payload),
        sections=[_section_from_dict(row) for row in payload.get("sections", [])],
        summary=ContentSummary(**summary_payload) if summary_payload else None,
    )


def _section_to_dict(section: Section) -> dict[str, Any]:
    view = section.section_summary
    return {
        "timestamp": section.timestamp,
        "chapter_title": section.chapter_title,
        "screenshot": asdict(section.screenshot),
        "subtitles": [asdict(segment) for segment in section.subtitles],
        "text": combine_subtitle_text(section.subtitles),
        "section_summary": (
            {
                "summary": view.summary,
                "key_points": view.key_points,
                "notable_quotes": view.notable_quotes,
                "status": view.status.value,
            }
            if view
            else None
        ),
        "enhancement": section.enhancement.to_dict() if section.enhancement else None,
    }


def _section_from_dict(row: dict[str, Any]) -> Section:
    enhancement = row.get("enhancement")
    return Section(
        timestamp=float(row["timestamp"]),
        screenshot=Screenshot(**row["screenshot"]),
        subtitles=[SubtitleSegment(**segment) for segment in row.get("subtitles", [])],
        chapter_title=row.get("chapter_title"),
        enhancement=EnhancedSectionContent.from_dict(enhancement) if enhancement else None,
    )
