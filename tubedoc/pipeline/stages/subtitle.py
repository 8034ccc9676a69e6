from __future__ import annotations

import logging
from pathlib import Path

from tubedoc.errors import TubedocError
from tubedoc.models import SubtitleSegment
from tubedoc.pipeline.context import Phase, PipelineContext
from tubedoc.subtitles import SubtitleExtractor

logger = logging.getLogger(__name__)


class SubtitleStage:
    name = "subtitles"
    phase = Phase.SUBTITLES

    async def execute(self, context: PipelineContext) -> None:
        context.report(20, "Extracting subtitles", status="processing")
        providers = context.providers
        metadata = context.metadata

        extractor = SubtitleExtractor(
            providers.youtube,
            context.settings.subtitle,
            transcriber=providers.transcriber,
            cache=providers.cache,
        )

        audio_path: Path | None = None
        wants_audio = not metadata.available_captions or context.settings.subtitle.priority == "whisper"
        if providers.transcriber is not None and wants_audio:
            context.report(25, "Downloading audio for transcription")
            audio_path = await providers.youtube.download_audio(context.video_id, context.temp_dir)

        subtitles = await extractor.extract(context.video_id, audio_path)
        context.subtitles = subtitles
        context.processed_segments = await self._translate(context, subtitles.language, subtitles.segments)

    async def _translate(
        self,
        context: PipelineContext,
        language: str,
        segments: list[SubtitleSegment],
    ) -> list[SubtitleSegment]:
        translation = context.settings.translation
        if not (translation.enabled and translation.auto_translate) or context.providers.ai is None or not segments:
            return segments
        if context.dev_mode and context.dev.skip_translation:
            logger.info("Dev mode: skipping subtitle translation")
            return segments

        target = translation.default_language
        if not language or language == target:
            return segments

        context.report(32, f"Translating subtitles ({language} -> {target})")
        logger.info("Translating subtitles: %s -> %s", language, target)
        try:
            return await context.providers.ai.translate(segments, target_language=target, source_language=language)
        except TubedocError as exc:
            logger.warning("Translation failed; using original subtitles: %s", exc)
            return segments
