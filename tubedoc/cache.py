from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(slots=True)
class CacheStats:
    entries: int
    size_bytes: int


class FileCache:
    """One JSON file per key with a ``created_at``/``expires_at`` envelope.

    Expired or unreadable entries are treated as misses and removed. Writes
    never raise; a failed write is logged and the entry is simply absent.
    """

    def __init__(self, directory: str | Path, ttl_days: float = 7) -> None:
        self.directory = Path(directory).expanduser()
        self.ttl_seconds = ttl_days * SECONDS_PER_DAY

    @staticmethod
    def generate_key(url: str, options: dict[str, Any] | None = None) -> str:
        data = json.dumps({"url": url, "options": options or {}}, sort_keys=True)
        return hashlib.md5(data.encode("utf-8")).hexdigest()

    def get(self, key: str) -> Any | None:
        path = self._path_for(key)
        if not path.exists():
            return None

        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
            expires_at = float(entry["expires_at"])
            value = entry["value"]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.debug("Discarding unreadable cache entry %s (%s)", path.name, exc)
            self._remove(path)
            return None

        if time.time() > expires_at:
            logger.debug("Cache entry expired: %s", key)
            self._remove(path)
            return None

        logger.debug("Cache hit: %s", key)
        return value

    def set(self, key: str, value: Any) -> None:
        now = time.time()
        entry = {
            "value": value,
            "created_at": now,
            "expires_at": now + self.ttl_seconds,
        }
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(entry, ensure_ascii=False), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to write cache entry %s: %s", key, exc)
            return
        logger.debug("Cache stored: %s", key)

    def delete(self, key: str) -> None:
        self._remove(self._path_for(key))

    def clear(self) -> int:
        removed = 0
        for path in self._entries():
            if self._remove(path):
                removed += 1
        logger.info("Cleared %d cache entries from %s", removed, self.directory)
        return removed

    def cleanup(self) -> int:
        """Remove expired and corrupt entries; return how many were removed."""

        removed = 0
        now = time.time()
        for path in self._entries():
            try:
                entry = json.loads(path.read_text(encoding="utf-8"))
                expired = now > float(entry["expires_at"])
            except (OSError, ValueError, KeyError, TypeError):
                expired = True
            if expired and self._remove(path):
                removed += 1
        logger.info("Removed %d expired cache entries from %s", removed, self.directory)
        return removed

    def stats(self) -> CacheStats:
        entries = self._entries()
        size = 0
        for path in entries:
            try:
                size += path.stat().st_size
            except OSError:
                continue
        return CacheStats(entries=len(entries), size_bytes=size)

    def _path_for(self, key: str) -> Path:
        safe_key = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in key)
        return self.directory / f"{safe_key}.json"

    def _entries(self) -> list[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(path for path in self.directory.glob("*.json") if path.is_file())

    @staticmethod
    def _remove(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Failed to delete cache file %s: %s", path, exc)
            return False
        return True
