from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "TUBEDOC_"


class OutputSettings(BaseModel):
    directory: Path = Path("output")
    filename_pattern: str = "{date}_{index}_{title}"
    format: Literal["json", "pdf", "md", "html"] = "json"


class ScreenshotSettings(BaseModel):
    interval: int = Field(default=60, ge=10, le=600)
    quality: Literal["low", "medium", "high"] = "low"


class SubtitleSettings(BaseModel):
    priority: Literal["youtube", "whisper"] = "youtube"
    languages: list[str] = Field(default_factory=lambda: ["ko", "en"])


class WhisperSettings(BaseModel):
    model_size: str = "small"
    device: str = "auto"
    compute_type: str = "default"


class CacheSettings(BaseModel):
    enabled: bool = True
    ttl_days: int = Field(default=7, ge=1, le=365)
    directory: Path = Path("~/.cache/tubedoc")


class ProcessingSettings(BaseModel):
    max_duration: int = 7200
    retry_count: int = Field(default=3, ge=0, le=10)


class SummarySettings(BaseModel):
    enabled: bool = False
    max_length: int = Field(default=500, ge=100, le=2000)
    style: Literal["brief", "detailed"] = "brief"
    language: str | None = None
    per_section: bool = True
    section_max_length: int = Field(default=150, ge=50, le=500)
    section_key_points: int = Field(default=3, ge=1, le=5)


class TranslationSettings(BaseModel):
    enabled: bool = False
    default_language: str = "ko"
    auto_translate: bool = True


class AISettings(BaseModel):
    provider: Literal["openai"] = "openai"
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    max_batch_tokens: int = 80_000
    temperature: float = 0.3


class ChapterSettings(BaseModel):
    use_youtube_chapters: bool = True
    auto_generate: bool = True
    min_chapter_length: int = Field(default=60, ge=30)
    max_chapters: int = Field(default=20, ge=1, le=50)


class DevSettings(BaseModel):
    enabled: bool = False


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    output: OutputSettings = Field(default_factory=OutputSettings)
    screenshot: ScreenshotSettings = Field(default_factory=ScreenshotSettings)
    subtitle: SubtitleSettings = Field(default_factory=SubtitleSettings)
    whisper: WhisperSettings = Field(default_factory=WhisperSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    summary: SummarySettings = Field(default_factory=SummarySettings)
    translation: TranslationSettings = Field(default_factory=TranslationSettings)
    ai: AISettings = Field(default_factory=AISettings)
    chapter: ChapterSettings = Field(default_factory=ChapterSettings)
    dev: DevSettings = Field(default_factory=DevSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def summary_language(self) -> str:
        return self.summary.language or self.translation.default_language

    @property
    def cache_root(self) -> Path:
        return self.cache.directory.expanduser()


@dataclass(frozen=True, slots=True)
class DevModeSettings:
    """Hard-wired limits applied when ``dev.enabled`` is set."""

    max_chapters: int = 2
    max_screenshots: int = 2
    video_quality: str = "360p"
    ai_sample_sections: int = 1
    skip_translation: bool = True
    skip_global_summary: bool = True


DEV_MODE_SETTINGS = DevModeSettings()


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides."""

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config: dict[str, Any] = {}
    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    return raw_value
