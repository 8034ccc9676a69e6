from __future__ import annotations

import logging
from pathlib import Path

from tubedoc.cache import FileCache
from tubedoc.config import SubtitleSettings
from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.models import SubtitleResult
from tubedoc.providers.base import Transcriber, VideoSource
from tubedoc.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

CAPTION_RETRY_POLICY = RetryPolicy(retry_on=(OSError, TimeoutError))


class SubtitleExtractor:
    """Resolve one video's subtitles from captions, the cache or transcription."""

    def __init__(
        self,
        youtube: VideoSource,
        settings: SubtitleSettings,
        *,
        transcriber: Transcriber | None = None,
        cache: FileCache | None = None,
        retry_policy: RetryPolicy = CAPTION_RETRY_POLICY,
    ) -> None:
        self.youtube = youtube
        self.settings = settings
        self.transcriber = transcriber
        self.cache = cache
        self.retry_policy = retry_policy

    def cache_key(self, video_id: str) -> str:
        return f"subtitle:{video_id}:{','.join(self.settings.languages)}"

    async def extract(self, video_id: str, audio_path: Path | None = None) -> SubtitleResult:
        key = self.cache_key(video_id)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Subtitle cache hit for %s", video_id)
                return SubtitleResult.from_dict(cached)

        result: SubtitleResult | None = None
        if self.settings.priority == "whisper" and self._can_transcribe(audio_path):
            result = await self._transcribe(audio_path)
        if result is None:
            result = await self._captions(video_id)
        if result is None and self._can_transcribe(audio_path):
            logger.info("No captions for %s; transcribing audio", video_id)
            result = await self._transcribe(audio_path)
        if result is None:
            raise TubedocError(
                ErrorCode.NO_CAPTIONS_AVAILABLE,
                f"No captions in {', '.join(self.settings.languages)} and no transcription fallback for {video_id}.",
            )

        if self.cache is not None:
            self.cache.set(key, result.to_dict())
        return result

    async def available_languages(self, video_id: str) -> list[str]:
        languages: list[str] = []
        for language in self.settings.languages:
            try:
                segments = await self.youtube.get_captions(video_id, language)
            except (OSError, TimeoutError) as exc:
                logger.debug("Caption lookup failed (%s): %s", language, exc)
                continue
            if segments:
                languages.append(language)
        return languages

    async def _captions(self, video_id: str) -> SubtitleResult | None:
        for language in self.settings.languages:
            try:
                segments = await retry_async(
                    lambda: self.youtube.get_captions(video_id, language),
                    self.retry_policy,
                    label=f"captions {video_id}/{language}",
                )
            except (OSError, TimeoutError) as exc:
                logger.debug("Captions unavailable (%s): %s", language, exc)
                continue
            if segments:
                logger.info("Using %s captions (%d segments)", language, len(segments))
                return SubtitleResult(source="youtube", language=language, segments=segments)
        return None

    def _can_transcribe(self, audio_path: Path | None) -> bool:
        return self.transcriber is not None and audio_path is not None

    async def _transcribe(self, audio_path: Path | None) -> SubtitleResult:
        assert self.transcriber is not None and audio_path is not None
        language = self.settings.languages[0] if self.settings.languages else None
        try:
            result = await self.transcriber.transcribe(audio_path, language=language)
        except (RuntimeError, OSError, ValueError) as exc:
            raise TubedocError(ErrorCode.TRANSCRIPTION_FAILED, f"Transcription failed: {exc}") from exc
        logger.info("Transcription finished (%d segments)", len(result.segments))
        return result
