from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from tubedoc.cache import FileCache
from tubedoc.models import EnhancedSectionContent, GlobalSummary, UnifiedProcessResult

logger = logging.getLogger(__name__)

RESULT_TTL_DAYS = 30


class ResultCache:
    """Disk cache for unified AI results, one file per content/config key."""

    def __init__(self, directory: str | Path, ttl_days: float = RESULT_TTL_DAYS) -> None:
        self._store = FileCache(directory, ttl_days=ttl_days)

    @property
    def directory(self) -> Path:
        return self._store.directory

    def read(self, key: str) -> UnifiedProcessResult | None:
        payload = self._store.get(key)
        if payload is None:
            return None
        try:
            return deserialize_result(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding malformed AI cache entry %s: %s", key, exc)
            self._store.delete(key)
            return None

    def write(self, key: str, result: UnifiedProcessResult) -> None:
        self._store.set(key, serialize_result(result))


def serialize_result(result: UnifiedProcessResult) -> dict[str, Any]:
    return {
        "sections": [
            {"timestamp": timestamp, "content": content.to_dict()}
            for timestamp, content in result.sections.items()
        ],
        "global_summary": {
            "summary": result.global_summary.summary,
            "key_points": list(result.global_summary.key_points),
        },
        "total_tokens_used": result.total_tokens_used,
    }


def deserialize_result(payload: dict[str, Any]) -> UnifiedProcessResult:
    sections = {
        float(row["timestamp"]): EnhancedSectionContent.from_dict(row["content"])
        for row in payload["sections"]
    }
    summary = payload.get("global_summary") or {}
    return UnifiedProcessResult(
        sections=sections,
        global_summary=GlobalSummary(
            summary=str(summary.get("summary", "")),
            key_points=[str(point) for point in summary.get("key_points", [])],
        ),
        total_tokens_used=int(payload.get("total_tokens_used", 0)),
        from_cache=True,
    )
