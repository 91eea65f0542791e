"""
TTS (Text-to-Speech) Response Pipeline.

This package turns assistant replies into playable audio:

- long_audio: Decides whether a reply fits one clip; truncates or splits it
- dispatcher: Generates audio per segment, in order, with SSML fallback
- batching: Merges short consecutive replies into one provider call
- templates: Canned spoken phrasings for common intents
- cost_estimator: Projects and measures what serving audio costs
- rate_limiter: Per-client request limit for the HTTP endpoint
- client: Speech provider that calls a remote /api/tts endpoint

Architecture Overview:

    ┌─────────────┐     ┌──────────────────┐     ┌─────────────────────────┐
    │ Reply text  │────▶│ process_long_    │────▶│ SegmentAudioDispatcher  │
    └─────────────┘     │ audio()          │     └─────────────────────────┘
                        └──────────────────┘                  │
                                                              ▼
                                                 ┌─────────────────────────┐
                                                 │ SpeechGenerationService │
                                                 │ (canonical-hash cache)  │
                                                 └─────────────────────────┘
                                                              │ miss
                                                              ▼
                                                 ┌─────────────────────────┐
                                                 │ TTSService (ElevenLabs/ │
                                                 │ OpenAI) → AudioStorage  │
                                                 └─────────────────────────┘

Every call lands in the generation log, which feeds the historical cost
analysis and the daily budget check.
"""

from .client import HttpSpeechClient
from .dispatcher import SegmentAudioDispatcher, SpeechProvider
from .errors import (
    BudgetExceededError,
    EmptyTextError,
    ProviderUnavailableError,
    SegmentGenerationError,
    SpeechProviderError,
    SpeechSynthesisError,
)
from .long_audio import needs_segmentation, process_long_audio
from .templates import TemplateRenderer, render_template

__all__ = [
    "BudgetExceededError",
    "EmptyTextError",
    "HttpSpeechClient",
    "ProviderUnavailableError",
    "SegmentAudioDispatcher",
    "SegmentGenerationError",
    "SpeechProvider",
    "SpeechProviderError",
    "SpeechSynthesisError",
    "TemplateRenderer",
    "needs_segmentation",
    "process_long_audio",
    "render_template",
]
