"""Batched translation, fact extraction and summarization of document sections."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tubedoc.ai.llm import ChatClient, LLMRequestError
from tubedoc.ai.result_cache import ResultCache
from tubedoc.merge.content_merger import combine_subtitle_text
from tubedoc.models import (
    EnhancedSectionContent,
    GlobalSummary,
    MainInformation,
    NotableQuote,
    Section,
    SectionStatus,
    TaggedBullet,
    UnifiedProcessResult,
)
from tubedoc.retry import RetryPolicy, retry_async
from tubedoc.text import estimate_tokens, language_name, sanitize_ai_text

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_TOKENS = 80_000
PROMPT_OVERHEAD_TOKENS = 500
MAX_COMPLETION_TOKENS = 16_000
COMPLETION_TOKENS_PER_SECTION = 1_400
GLOBAL_SUMMARY_MAX_TOKENS = 1_000
DEFAULT_TEMPERATURE = 0.3
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (LLMRequestError, OSError, TimeoutError)

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)


@dataclass(slots=True)
class UnifiedProcessOptions:
    video_id: str
    source_language: str
    target_language: str
    max_key_points: int = 3
    include_quotes: bool = True
    enable_cache: bool = True
    include_global_summary: bool = True


@dataclass(slots=True)
class _PendingSection:
    timestamp: float
    raw_text: str


class UnifiedContentProcessor:
    """Enhance every section with as few chat-completion calls as possible.

    Sections are packed greedily into token-budgeted batches and sent one
    batch at a time. Every section receives exactly one
    ``EnhancedSectionContent``: model output when the response could be read,
    a degraded fallback carrying the raw text otherwise. Request-level
    failures are retried per ``retry_policy`` and propagate once exhausted.
    """

    def __init__(
        self,
        client: ChatClient,
        *,
        cache: ResultCache | str | Path | None = None,
        retry_policy: RetryPolicy | None = None,
        max_batch_tokens: int = DEFAULT_MAX_BATCH_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self.client = client
        if cache is not None and not isinstance(cache, ResultCache):
            cache = ResultCache(cache)
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy(retry_on=RETRYABLE_ERRORS)
        self.max_batch_tokens = max_batch_tokens
        self.temperature = temperature

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return estimate_tokens(text)

    def create_batches(self, sections: list[Section], max_tokens: int | None = None) -> list[list[Section]]:
        """Pack sections in order; an oversized section becomes its own batch."""

        budget = max_tokens if max_tokens is not None else self.max_batch_tokens
        batches: list[list[Section]] = []
        current: list[Section] = []
        used = PROMPT_OVERHEAD_TOKENS

        for section in sections:
            cost = estimate_tokens(combine_subtitle_text(section.subtitles))
            if current and used + cost > budget:
                batches.append(current)
                current = []
                used = PROMPT_OVERHEAD_TOKENS
            current.append(section)
            used += cost

        if current:
            batches.append(current)
        return batches

    @staticmethod
    def hash_content(sections: list[Section]) -> str:
        joined = "|".join(combine_subtitle_text(section.subtitles) for section in sections)
        return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]

    @staticmethod
    def hash_config(options: UnifiedProcessOptions) -> str:
        config = json.dumps(
            {
                "targetLanguage": options.target_language,
                "maxKeyPoints": options.max_key_points,
                "includeQuotes": options.include_quotes,
            }
        )
        return hashlib.md5(config.encode("utf-8")).hexdigest()[:8]

    def cache_key(self, sections: list[Section], options: UnifiedProcessOptions) -> str:
        return f"{options.video_id}_{self.hash_content(sections)}_{self.hash_config(options)}"

    async def process_all_sections(
        self,
        sections: list[Section],
        options: UnifiedProcessOptions,
    ) -> UnifiedProcessResult:
        if not sections:
            return UnifiedProcessResult(sections={}, global_summary=GlobalSummary(), total_tokens_used=0)

        key = self.cache_key(sections, options)
        if options.enable_cache and self.cache is not None:
            cached = self.cache.read(key)
            if cached is not None:
                logger.info("Using cached AI result for %s (%d sections)", options.video_id, len(cached.sections))
                return cached

        batches = self.create_batches(sections)
        logger.info("Processing %d sections in %d batch(es)", len(sections), len(batches))

        results: dict[float, EnhancedSectionContent] = {}
        total_tokens = 0
        for index, batch in enumerate(batches, start=1):
            pending = [
                _PendingSection(timestamp=section.timestamp, raw_text=combine_subtitle_text(section.subtitles))
                for section in batch
            ]
            contents, tokens = await self._process_batch(pending, options, label=f"AI batch {index}/{len(batches)}")
            results.update(contents)
            total_tokens += tokens

        global_summary = GlobalSummary()
        if options.include_global_summary:
            global_summary = await self.generate_global_summary(results, options.target_language)
        result = UnifiedProcessResult(
            sections=results,
            global_summary=global_summary,
            total_tokens_used=total_tokens,
        )
        logger.info("AI processing used %d tokens", total_tokens)

        if options.enable_cache and self.cache is not None:
            self.cache.write(key, result)
        return result

    async def _process_batch(
        self,
        batch: list[_PendingSection],
        options: UnifiedProcessOptions,
        *,
        label: str,
    ) -> tuple[dict[float, EnhancedSectionContent], int]:
        messages = [
            {
                "role": "system",
                "content": build_system_prompt(
                    options.target_language,
                    options.max_key_points,
                    options.include_quotes,
                ),
            },
            {"role": "user", "content": build_user_message(batch)},
        ]
        max_tokens = min(MAX_COMPLETION_TOKENS, len(batch) * COMPLETION_TOKENS_PER_SECTION)

        completion = await retry_async(
            lambda: self.client.complete(
                messages,
                temperature=self.temperature,
                max_tokens=max_tokens,
                json_mode=True,
            ),
            self.retry_policy,
            label=label,
        )

        parsed = parse_response(completion.content)
        by_index: dict[int, dict[str, Any]] = {}
        for row in _as_list(parsed.get("sections")):
            if isinstance(row, dict) and isinstance(row.get("index"), int):
                by_index.setdefault(row["index"], row)

        contents: dict[float, EnhancedSectionContent] = {}
        for index, item in enumerate(batch):
            row = by_index.get(index)
            if row is None:
                logger.warning("%s: no model output for section at %.1fs; using raw text", label, item.timestamp)
                contents[item.timestamp] = EnhancedSectionContent.fallback(item.raw_text)
                continue
            contents[item.timestamp] = _content_from_row(row, item.raw_text, options.max_key_points)
        return contents, completion.total_tokens

    async def generate_global_summary(
        self,
        sections: dict[float, EnhancedSectionContent],
        target_language: str,
    ) -> GlobalSummary:
        """Summarize the whole video from section one-liners and key points."""

        one_liners = [content.one_liner for content in sections.values() if content.one_liner]
        if not one_liners:
            return GlobalSummary()
        key_points = [point for content in sections.values() for point in content.key_points]

        lines = ["Section summaries:", *(f"- {line}" for line in one_liners)]
        if key_points:
            lines.extend(["", "Key points:", *(f"- {point}" for point in key_points)])

        language = language_name(target_language)
        messages = [
            {
                "role": "system",
                "content": (
                    f"You summarize videos in {language}. Using only the section notes provided, "
                    "write an overall summary and the most important takeaways. Respond with JSON: "
                    '{"summary": "3-5 sentence summary", "keyPoints": ["top 5 key points"]}'
                ),
            },
            {"role": "user", "content": "\n".join(lines)},
        ]

        try:
            completion = await retry_async(
                lambda: self.client.complete(
                    messages,
                    temperature=self.temperature,
                    max_tokens=GLOBAL_SUMMARY_MAX_TOKENS,
                    json_mode=True,
                ),
                self.retry_policy,
                label="global summary",
            )
        except RETRYABLE_ERRORS as exc:
            logger.warning("Global summary failed; continuing without it: %s", exc)
            return GlobalSummary()

        parsed = parse_response(completion.content)
        top_points = parsed.get("keyPoints")
        return GlobalSummary(
            summary=sanitize_ai_text(str(parsed.get("summary") or "")),
            key_points=[sanitize_ai_text(str(p)) for p in top_points] if isinstance(top_points, list) else [],
        )


def build_system_prompt(target_language: str, max_key_points: int, include_quotes: bool) -> str:
    language = language_name(target_language)
    quote_task = (
        '\n4. notableQuotes: up to 2 memorable verbatim quotes, each {"text": "...", "speaker": "name or null"}.'
        if include_quotes
        else ""
    )
    quote_field = ', "notableQuotes": [{"text": "...", "speaker": null}]' if include_quotes else ""
    return f"""You turn video transcript sections into structured study notes written in {language}.

For every section do the following:
1. oneLiner: one sentence of at most 50 characters capturing the section.
2. keyPoints: exactly {max_key_points} short key points.
3. translatedText: the full transcript text translated into {language}, keeping every detail.
   mainInformation: up to 3 paragraphs explaining the content, and up to 6 bullets of concrete facts.
   Each bullet starts with one tag: [METRIC] numbers and results, [TOOL] products and libraries,
   [TECHNIQUE] methods and practices, [DEFINITION] terms being defined, [INSIGHT] opinions and lessons.{quote_task}

Respond with a single JSON object:
{{"sections": [{{"index": 0, "oneLiner": "...", "keyPoints": ["..."], "translatedText": "...",
"mainInformation": {{"paragraphs": ["..."], "bullets": ["[TOOL] ..."]}}{quote_field}}}]}}

Use the section index given in each [SECTION n] marker. Process EVERY section."""


def build_user_message(batch: list[_PendingSection]) -> str:
    blocks = [
        f"[SECTION {index}] (timestamp: {item.timestamp:g}s)\n{item.raw_text}"
        for index, item in enumerate(batch)
    ]
    return "\n\n---\n\n".join(blocks)


def parse_response(raw: str) -> dict[str, Any]:
    """Pull the JSON object out of a model reply; unreadable replies give no sections.

    The reply is parsed as-is first, then the body of a ```json fence, then
    the first balanced ``{...}`` span of the fence body or of the whole reply.
    """

    text = raw or ""
    candidates: list[str | None] = [text]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1))
        candidates.append(_first_json_object(fenced.group(1)))
    candidates.append(_first_json_object(text))

    for candidate in candidates:
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    logger.warning("Model reply contained no readable JSON object (%d chars)", len(text))
    return {"sections": []}


def _first_json_object(text: str) -> str | None:
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for position in range(start, len(text)):
        char = text[position]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : position + 1]
    return None


def _content_from_row(row: dict[str, Any], raw_text: str, max_key_points: int) -> EnhancedSectionContent:
    main = row.get("mainInformation") if isinstance(row.get("mainInformation"), dict) else {}
    quotes: list[NotableQuote] = []
    for quote in _as_list(row.get("notableQuotes")):
        if isinstance(quote, dict) and quote.get("text"):
            speaker = quote.get("speaker")
            quotes.append(NotableQuote(text=sanitize_ai_text(str(quote["text"])), speaker=str(speaker) if speaker else None))
        elif isinstance(quote, str) and quote.strip():
            quotes.append(NotableQuote(text=sanitize_ai_text(quote.strip())))

    translated = sanitize_ai_text(str(row.get("translatedText") or "")).strip()
    return EnhancedSectionContent(
        one_liner=sanitize_ai_text(str(row.get("oneLiner") or "")).strip(),
        key_points=[sanitize_ai_text(str(p)).strip() for p in _as_list(row.get("keyPoints")) if str(p).strip()][
            :max_key_points
        ],
        notable_quotes=quotes,
        main_information=MainInformation(
            paragraphs=[sanitize_ai_text(str(p)).strip() for p in _as_list(main.get("paragraphs")) if str(p).strip()],
            tagged_bullets=[
                TaggedBullet.parse(sanitize_ai_text(str(b))) for b in _as_list(main.get("bullets")) if str(b).strip()
            ],
        ),
        translated_text=translated or raw_text,
        status=SectionStatus.ENHANCED,
    )


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
