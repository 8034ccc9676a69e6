from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from tubedoc.config import WhisperSettings
from tubedoc.models import SubtitleResult, SubtitleSegment

logger = logging.getLogger(__name__)


class WhisperTranscriber:
    """Local speech-to-text with faster-whisper; the model loads on first use."""

    def __init__(self, settings: WhisperSettings) -> None:
        self.settings = settings
        self._model: Any = None

    async def transcribe(self, audio_path: Path, language: str | None = None) -> SubtitleResult:
        return await asyncio.to_thread(self._transcribe, Path(audio_path), language)

    def _transcribe(self, audio_path: Path, language: str | None) -> SubtitleResult:
        source_path = audio_path.expanduser().resolve()
        if not source_path.exists():
            raise FileNotFoundError(f"Audio file not found: {source_path}")

        model = self._load_model()
        segments_iter, info = model.transcribe(
            str(source_path),
            language=language,
            vad_filter=True,
            word_timestamps=False,
        )

        segments: list[SubtitleSegment] = []
        for segment in segments_iter:
            text = segment.text.strip()
            if not text:
                continue
            segments.append(
                SubtitleSegment(
                    start=round(float(segment.start), 3),
                    end=round(float(segment.end), 3),
                    text=text,
                )
            )

        detected = getattr(info, "language", None) or language or "unknown"
        logger.info("Transcribed %s: %d segments (%s)", source_path.name, len(segments), detected)
        return SubtitleResult(source="whisper", language=detected, segments=segments)

    def _load_model(self) -> Any:
        if self._model is None:
            from faster_whisper import WhisperModel

            self._model = WhisperModel(
                self.settings.model_size,
                device=self.settings.device,
                compute_type=self.settings.compute_type,
            )
        return self._model
