"""Schemas for speech generation, segmentation and per-segment audio."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

TTSMode = Literal["brief", "full"]
TTS_MODES: tuple[str, ...] = ("brief", "full")

TTSProviderName = Literal["elevenlabs", "openai"]

# ElevenLabs voice ids; the original assistant speaks with "Adam".
ELEVENLABS_VOICES = {
    "pNInz6obpgDQGcFmaJgB": "Adam",
    "21m00Tcm4TlvDq8ikWAM": "Rachel",
    "EXAVITQu4vr4xnSDxMaL": "Bella",
    "ErXwobaYiN019PkySvjV": "Antoni",
    "XB0fDUnXU5powFXDhCwa": "Charlotte",
}

OPENAI_VOICES = [
    "alloy",
    "echo",
    "fable",
    "nova",
    "onyx",
    "shimmer",
]


class SegmentationConfig(BaseModel):
    """Limits that decide when a spoken response must be truncated or split."""

    max_words: int = Field(default=150, gt=0, description="Max words per segment.")
    max_segments: int = Field(default=5, gt=0)
    max_seconds: float = Field(
        default=12.0,
        gt=0,
        description="Estimated playback seconds above which text is too long.",
    )
    words_per_second: float = Field(default=2.5, gt=0)
    enable_ssml: bool = Field(
        default=True,
        description="Insert SSML breaks between sentences of each segment.",
    )
    break_ms: int = Field(default=300, ge=0)
    truncate_brief_mode: bool = True

    @property
    def break_tag(self) -> str:
        return f'<break time="{self.break_ms}ms"/>'


class AudioSegment(BaseModel):
    """One independently generated unit of speech."""

    index: int = Field(ge=0)
    text: str = Field(description="Segment text, possibly with SSML breaks.")
    plain_text: str
    word_count: int = Field(ge=0)
    estimated_seconds: float = Field(ge=0)
    hash: str


class SegmentationResult(BaseModel):
    segments: list[AudioSegment]
    was_segmented: bool = False
    was_truncated: bool = False
    total_words: int = 0
    total_estimated_seconds: float = 0.0
    original_text: str = ""


class GeneratedAudio(BaseModel):
    """Response of a speech provider for one piece of text."""

    audio_url: str
    cached: bool = False
    provider: str
    expires_at: str | None = None


class CachedAudio(BaseModel):
    """Audio cache entry, keyed by the canonical text hash."""

    text_hash: str
    audio_url: str
    content_type: str = "audio/mpeg"
    bitrate: int | None = None
    expires_at: datetime
    voice_name: str | None = None
    provider: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or datetime.now(timezone.utc))


class SegmentAudio(GeneratedAudio):
    segment: AudioSegment


class LongAudioMetadata(BaseModel):
    total_words: int
    total_estimated_seconds: float
    was_segmented: bool
    was_truncated: bool


class LongAudioOutput(BaseModel):
    segments: list[AudioSegment]
    audio_urls: list[SegmentAudio]
    metadata: LongAudioMetadata


class BatchingConfig(BaseModel):
    """Rules for merging short responses into one provider call."""

    max_word_count: int = Field(default=12, gt=0, description="Max words per batched item.")
    max_batch_size: int = Field(default=5, gt=0)
    separator: str = " "
    require_same_context: bool = True
    enable_batching: bool = True


class TtsBatchItem(BaseModel):
    text: str = Field(min_length=1)
    voice: str | None = None
    mode: TTSMode | None = None
    metadata: dict[str, Any] | None = None


class BatchItemSpan(BaseModel):
    """Where one item sits inside the combined batch text."""

    text: str
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)


class TtsBatchResult(GeneratedAudio):
    items: list[BatchItemSpan]


class BatchFailure(BaseModel):
    text: str
    error: str


class BatchRun(BaseModel):
    results: list[TtsBatchResult] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)


class TtsRequest(BaseModel):
    text: str = Field(min_length=1)
    voice: str | None = None
    provider_preference: TTSProviderName | None = None
    mode: TTSMode | None = None
    session_id: str | None = None
    segment_count: int | None = Field(
        default=None,
        ge=1,
        description="Number of segments in the long response this text belongs to.",
    )


class SegmentationRequest(BaseModel):
    text: str
    mode: TTSMode = "full"
    config: SegmentationConfig = Field(default_factory=SegmentationConfig)


class LongAudioRequest(SegmentationRequest):
    voice: str | None = None
    provider_preference: TTSProviderName | None = None


class BatchTtsRequest(BaseModel):
    items: list[TtsBatchItem] = Field(min_length=1)
    config: BatchingConfig = Field(default_factory=BatchingConfig)
    provider_preference: TTSProviderName | None = None


__all__ = [
    "AudioSegment",
    "BatchFailure",
    "BatchItemSpan",
    "BatchRun",
    "BatchTtsRequest",
    "BatchingConfig",
    "CachedAudio",
    "ELEVENLABS_VOICES",
    "GeneratedAudio",
    "LongAudioMetadata",
    "LongAudioOutput",
    "LongAudioRequest",
    "OPENAI_VOICES",
    "SegmentAudio",
    "SegmentationConfig",
    "SegmentationRequest",
    "SegmentationResult",
    "TTSMode",
    "TTSProviderName",
    "TTS_MODES",
    "TtsBatchItem",
    "TtsBatchResult",
    "TtsRequest",
]
