from __future__ import annotations

import math
import re
from datetime import datetime

HANGUL_SYLLABLES = re.compile(r"[\uAC00-\uD7AF]")
# Hangul extension blocks that only show up as model garbage
_RARE_HANGUL = re.compile(r"[\uD7B0-\uD7FF\uA960-\uA97F\u3200-\u321E]")
_FILENAME_UNSAFE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

LANGUAGE_NAMES = {
    "ko": "한국어",
    "en": "English",
    "ja": "日本語",
    "zh": "中文",
    "es": "Español",
    "fr": "Français",
    "de": "Deutsch",
}


def count_hangul(text: str) -> int:
    return len(HANGUL_SYLLABLES.findall(text))


def estimate_tokens(text: str) -> int:
    """Heuristic token count: Hangul syllables cost 1.5, anything else 1/4."""

    hangul = count_hangul(text)
    return math.ceil(hangul * 1.5 + (len(text) - hangul) / 4)


def hangul_ratio(text: str) -> float:
    letters = re.sub(r"[\s\d\W]", "", text)
    if not letters:
        return 0.0
    return count_hangul(text) / len(letters)


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def format_timestamp(seconds: float) -> str:
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def sanitize_ai_text(text: str) -> str:
    """Drop rare Hangul extension characters that LLMs sometimes emit."""

    if not text:
        return text
    return _RARE_HANGUL.sub("", text)


def apply_filename_pattern(pattern: str, values: dict[str, str]) -> str:
    rendered = pattern
    for key, value in values.items():
        rendered = rendered.replace(f"{{{key}}}", value)
    rendered = _FILENAME_UNSAFE.sub("_", rendered)
    rendered = re.sub(r"\s+", "_", rendered).strip("._")
    return rendered[:120] or "output"


def date_string(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d")


def timestamp_string(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
