"""Exceptions raised while generating speech."""

from __future__ import annotations


class SpeechSynthesisError(RuntimeError):
    """Base error raised for speech generation failures."""


class SpeechProviderError(SpeechSynthesisError):
    """Raised when a TTS provider returns a non-success response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderUnavailableError(SpeechSynthesisError):
    """Raised when no TTS provider is configured."""


class BudgetExceededError(SpeechSynthesisError):
    """Raised when the daily TTS spend has reached the hard cap."""


class EmptyTextError(ValueError):
    """Raised when nothing speakable is left after sanitizing the input."""


class SegmentGenerationError(SpeechSynthesisError):
    """Raised when a segment cannot be generated, even after the plain-text retry."""

    def __init__(self, index: int, message: str) -> None:
        super().__init__(f"Audio generation failed for segment {index}: {message}")
        self.index = index
        self.provider_message = message


__all__ = [
    "BudgetExceededError",
    "EmptyTextError",
    "ProviderUnavailableError",
    "SegmentGenerationError",
    "SpeechProviderError",
    "SpeechSynthesisError",
]
