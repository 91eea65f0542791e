"""
Per-segment audio generation.

The dispatcher takes the ordered segments produced by ``process_long_audio``
and issues one provider call per segment. Calls run concurrently, but the
results are returned in segment order so playback never reorders the
narrative.

Architecture:
    SegmentationResult.segments → SegmentAudioDispatcher → SpeechProvider
                                                                │
                                                                ▼
                                         list[SegmentAudio] (index-aligned)

A failed SSML attempt is retried once with the segment's plain text. Any
segment that still fails aborts the whole batch with a
``SegmentGenerationError``: a missing segment would desynchronize playback.

Usage:
    dispatcher = SegmentAudioDispatcher(speech_service, timeout_seconds=30)
    output = await dispatcher.process_and_generate_long_audio(text, "full")
    for item in output.audio_urls:
        play(item.audio_url)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, Sequence

from ...schemas.tts import (
    AudioSegment,
    GeneratedAudio,
    LongAudioMetadata,
    LongAudioOutput,
    SegmentAudio,
)
from .errors import SegmentGenerationError, SpeechProviderError
from .long_audio import ConfigLike, process_long_audio

logger = logging.getLogger(__name__)


class SpeechProvider(Protocol):
    """Anything that turns text (or SSML) into a playable audio URL."""

    async def generate(
        self,
        text: str,
        voice: str | None = None,
        provider: str | None = None,
        *,
        mode: str | None = None,
        segment_count: int | None = None,
    ) -> GeneratedAudio: ...


class SegmentAudioDispatcher:
    """
    Generate audio for ordered segments through a speech provider.

    Attributes:
        speech_provider: Provider called once per segment (twice on SSML fallback)
        timeout_seconds: Upper bound for each provider call
        max_concurrency: Number of provider calls allowed in flight at once
    """

    def __init__(
        self,
        speech_provider: SpeechProvider,
        *,
        timeout_seconds: float = 30.0,
        max_concurrency: int = 4,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.speech_provider = speech_provider
        self.timeout_seconds = timeout_seconds
        self.max_concurrency = max_concurrency

    async def _call(
        self,
        text: str,
        voice: str | None,
        provider: str | None,
        **context: Any,
    ) -> GeneratedAudio:
        try:
            return await asyncio.wait_for(
                self.speech_provider.generate(text, voice, provider, **context),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise SpeechProviderError(
                f"TTS provider timed out after {self.timeout_seconds:.0f}s"
            ) from exc

    async def _generate_one(
        self,
        segment: AudioSegment,
        voice: str | None,
        provider: str | None,
        ssml_fallback: bool,
        semaphore: asyncio.Semaphore,
        context: dict[str, Any],
    ) -> SegmentAudio:
        uses_ssml = segment.text != segment.plain_text
        async with semaphore:
            try:
                audio = await self._call(segment.text, voice, provider, **context)
            except SpeechProviderError as exc:
                if not (ssml_fallback and uses_ssml):
                    raise SegmentGenerationError(segment.index, str(exc)) from exc
                logger.warning(
                    "SSML request failed for segment %d (%s), retrying with plain text",
                    segment.index,
                    exc,
                )
                try:
                    audio = await self._call(
                        segment.plain_text, voice, provider, **context
                    )
                except Exception as retry_exc:
                    raise SegmentGenerationError(segment.index, str(retry_exc)) from retry_exc
            except Exception as exc:
                # Budget, configuration and storage failures are not retried
                raise SegmentGenerationError(segment.index, str(exc)) from exc

        return SegmentAudio(segment=segment, **audio.model_dump())

    async def generate_segment_audio(
        self,
        segments: Sequence[AudioSegment],
        voice: str | None = None,
        provider: str | None = None,
        ssml_fallback: bool = True,
        mode: str | None = None,
    ) -> list[SegmentAudio]:
        """
        Generate audio for every segment, preserving segment order.

        Args:
            segments: Segments to generate, in playback order
            voice: Voice name or id passed through to the provider
            provider: Preferred provider name, if any
            ssml_fallback: Retry a failed SSML request once with plain text
            mode: Playback mode, passed to the provider with the segment count

        Returns:
            One result per segment; ``result[i].segment is segments[i]``

        Raises:
            SegmentGenerationError: A segment failed; no partial result is returned
        """
        if not segments:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        context: dict[str, Any] = {"mode": mode, "segment_count": len(segments)}
        tasks = [
            asyncio.create_task(
                self._generate_one(
                    segment, voice, provider, ssml_fallback, semaphore, context
                )
            )
            for segment in segments
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        cached = sum(1 for result in results if result.cached)
        logger.info(
            "Generated audio for %d segments (%d from cache)", len(results), cached
        )
        return list(results)

    async def process_and_generate_long_audio(
        self,
        text: str,
        mode: str = "full",
        voice: str | None = None,
        config: ConfigLike = None,
        provider: str | None = None,
    ) -> LongAudioOutput:
        """Segment ``text`` and generate audio for each segment in one call."""

        result = process_long_audio(text, mode, config)
        audio_urls = await self.generate_segment_audio(
            result.segments, voice, provider, mode=mode
        )
        return LongAudioOutput(
            segments=result.segments,
            audio_urls=audio_urls,
            metadata=LongAudioMetadata(
                total_words=result.total_words,
                total_estimated_seconds=result.total_estimated_seconds,
                was_segmented=result.was_segmented,
                was_truncated=result.was_truncated,
            ),
        )


__all__ = ["SegmentAudioDispatcher", "SpeechProvider"]
