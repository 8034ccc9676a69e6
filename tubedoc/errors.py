from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    INVALID_URL = "INVALID_URL"
    VIDEO_NOT_FOUND = "VIDEO_NOT_FOUND"
    VIDEO_PRIVATE = "VIDEO_PRIVATE"
    PLAYLIST_EMPTY = "PLAYLIST_EMPTY"
    NO_CAPTIONS_AVAILABLE = "NO_CAPTIONS_AVAILABLE"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    VIDEO_DOWNLOAD_FAILED = "VIDEO_DOWNLOAD_FAILED"
    SCREENSHOT_FAILED = "SCREENSHOT_FAILED"
    API_KEY_MISSING = "API_KEY_MISSING"
    AI_REQUEST_FAILED = "AI_REQUEST_FAILED"
    PIPELINE_STATE = "PIPELINE_STATE"


class TubedocError(Exception):
    """Typed failure that aborts the current video's run."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"
