"""
Long Response Handling for the TTS Pipeline.

This module decides whether a spoken response is too long to be generated
as a single clip and, if so, either truncates it (brief mode) or splits it
into ordered segments (full mode). Every segment carries its own cache key
so repeated segments are served from the audio cache independently.

Architecture:
    response text → process_long_audio() → SegmentationResult
                                               │
                                               ▼
                                   SegmentAudioDispatcher (one call per segment)

Segment order is part of the contract: segments are numbered 0..N-1 in
textual order and must be played back in that order.

Usage:
    config = SegmentationConfig(max_words=80)
    if needs_segmentation(text, "full", config):
        result = process_long_audio(text, "full", config)
        for segment in result.segments:
            ...
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from ...schemas.tts import (
    TTS_MODES,
    AudioSegment,
    SegmentationConfig,
    SegmentationResult,
)
from ...utils.canonicalize import hash_text

logger = logging.getLogger(__name__)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_SSML_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_PARENTHETICAL = re.compile(r"\s*\([^)]*\)")

# Filler phrases that carry no information in a spoken summary.
_FILLER_PHRASES = [
    re.compile(r"\s*\bas (?:mentioned|stated|noted) (?:before|earlier|previously),?\s*", re.IGNORECASE),
    re.compile(r"\s*\bby the way,?\s*", re.IGNORECASE),
    re.compile(r"\s*\bjust (?:so you know|to clarify|to note),?\s*", re.IGNORECASE),
    re.compile(r"\s*\bin other words,?\s*", re.IGNORECASE),
]

ConfigLike = SegmentationConfig | Mapping[str, Any] | None


def count_words(text: str) -> int:
    return len(text.split())


def split_into_sentences(text: str) -> list[str]:
    """Split on ``.``, ``!`` or ``?`` followed by whitespace.

    Text without sentence-ending punctuation comes back as one sentence.
    """
    return [part.strip() for part in _SENTENCE_BOUNDARY.split(text.strip()) if part.strip()]


def insert_ssml_breaks(text: str, break_tag: str) -> str:
    """Join the sentences of ``text`` with an SSML break between each pair."""
    sentences = split_into_sentences(text)
    if len(sentences) <= 1:
        return text
    return f" {break_tag} ".join(sentences)


def strip_ssml(text: str) -> str:
    return _WHITESPACE.sub(" ", _SSML_TAG.sub(" ", text)).strip()


def remove_asides(text: str) -> tuple[str, list[str]]:
    """Drop parenthetical remarks and filler phrases.

    Returns:
        The remaining text and the list of removed fragments
    """
    removed: list[str] = []

    def _collect(match: re.Match[str]) -> str:
        removed.append(match.group(0).strip())
        return " "

    critical = _PARENTHETICAL.sub(_collect, text)
    for pattern in _FILLER_PHRASES:
        critical = pattern.sub(_collect, critical)
    return _WHITESPACE.sub(" ", critical).strip(), removed


def truncate_to_words(text: str, budget: int) -> tuple[str, bool]:
    """Keep whole sentences while they fit ``budget`` words.

    When not even the first sentence fits, it is cut at the last word
    boundary inside the budget.
    """
    sentences = split_into_sentences(text)
    kept: list[str] = []
    used = 0
    for sentence in sentences:
        words = count_words(sentence)
        if used + words > budget:
            break
        kept.append(sentence)
        used += words

    if kept:
        return " ".join(kept), len(kept) < len(sentences)
    if not sentences:
        return "", False

    words = sentences[0].split()
    return " ".join(words[:budget]) + "...", True


def pack_sentences(
    sentences: list[str], max_words: int, max_segments: int
) -> tuple[list[str], bool]:
    """Pack sentences, in order, into at most ``max_segments`` chunks.

    A chunk is closed as soon as the next sentence would push it over
    ``max_words``. A sentence longer than ``max_words`` occupies a chunk
    of its own. Sentences that do not fit once ``max_segments`` chunks
    exist are dropped.

    Returns:
        The chunk texts and whether any sentence was dropped
    """
    chunks: list[list[str]] = []
    current: list[str] = []
    current_words = 0
    dropped = False

    for sentence in sentences:
        words = count_words(sentence)
        if current and current_words + words > max_words:
            chunks.append(current)
            current = []
            current_words = 0
        if not current and len(chunks) >= max_segments:
            dropped = True
            break
        current.append(sentence)
        current_words += words

    if current:
        chunks.append(current)

    return [" ".join(chunk) for chunk in chunks], dropped


def resolve_config(config: ConfigLike) -> SegmentationConfig:
    """Build a validated config; invalid limits raise ``ValidationError``."""
    if config is None:
        return SegmentationConfig()
    if isinstance(config, SegmentationConfig):
        return config
    return SegmentationConfig.model_validate(dict(config))


def _check_mode(mode: str) -> None:
    if mode not in TTS_MODES:
        raise ValueError(f"Unknown TTS mode {mode!r}; expected one of {TTS_MODES}")


def _build_segment(index: int, text: str, config: SegmentationConfig) -> AudioSegment:
    spoken = insert_ssml_breaks(text, config.break_tag) if config.enable_ssml else text
    plain = strip_ssml(spoken)
    word_count = count_words(plain)
    return AudioSegment(
        index=index,
        text=spoken,
        plain_text=plain,
        word_count=word_count,
        estimated_seconds=word_count / config.words_per_second,
        hash=hash_text(plain),
    )


def _result(
    segments: list[AudioSegment],
    original_text: str,
    *,
    was_segmented: bool,
    was_truncated: bool,
) -> SegmentationResult:
    return SegmentationResult(
        segments=segments,
        was_segmented=was_segmented,
        was_truncated=was_truncated,
        total_words=sum(segment.word_count for segment in segments),
        total_estimated_seconds=sum(segment.estimated_seconds for segment in segments),
        original_text=original_text,
    )


def needs_segmentation(text: str, mode: str = "full", config: ConfigLike = None) -> bool:
    """True when ``text`` exceeds the word limit or the duration limit."""
    _check_mode(mode)
    cfg = resolve_config(config)
    words = count_words(text)
    return words > cfg.max_words or words / cfg.words_per_second > cfg.max_seconds


def process_long_audio(
    text: str, mode: str = "full", config: ConfigLike = None
) -> SegmentationResult:
    """Turn a response into ordered, cache-keyed audio segments.

    Args:
        text: Response text to be spoken
        mode: ``"brief"`` truncates over-long text, ``"full"`` splits it
        config: Segmentation limits (defaults apply for missing fields)

    Returns:
        SegmentationResult with contiguous segment indices starting at 0
    """
    cfg = resolve_config(config)
    if not needs_segmentation(text, mode, cfg):
        return _result(
            [_build_segment(0, text, cfg)],
            text,
            was_segmented=False,
            was_truncated=False,
        )

    if mode == "brief" and cfg.truncate_brief_mode:
        budget = min(cfg.max_words, max(1, int(cfg.max_seconds * cfg.words_per_second)))
        critical, removed = remove_asides(text)
        truncated_text, cut = truncate_to_words(critical, budget)
        logger.debug(
            "Brief response truncated to %d words (%d asides removed)",
            count_words(truncated_text),
            len(removed),
        )
        return _result(
            [_build_segment(0, truncated_text, cfg)],
            text,
            was_segmented=False,
            was_truncated=cut or bool(removed),
        )

    chunks, dropped = pack_sentences(
        split_into_sentences(text), cfg.max_words, cfg.max_segments
    )
    if dropped:
        logger.warning(
            "Response exceeded %d segments; trailing sentences were dropped",
            cfg.max_segments,
        )
    segments = [_build_segment(index, chunk, cfg) for index, chunk in enumerate(chunks)]
    logger.debug("Response split into %d segments", len(segments))
    return _result(segments, text, was_segmented=True, was_truncated=dropped)


__all__ = [
    "count_words",
    "insert_ssml_breaks",
    "needs_segmentation",
    "pack_sentences",
    "process_long_audio",
    "remove_asides",
    "resolve_config",
    "split_into_sentences",
    "strip_ssml",
    "truncate_to_words",
]
