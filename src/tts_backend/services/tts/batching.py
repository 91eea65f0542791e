"""
Batching of short spoken responses.

Several short responses in a row ("Done.", "Saved to your calendar.") are
merged into one provider call to amortize per-call overhead. Each item
keeps its character span inside the combined text so a player can map
the single clip back to the individual responses.

An item joins the current batch only when it is short enough, the batch
has room, and it shares voice and metadata with the previous item. If
the batched run fails, every item is retried on its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ...schemas.tts import (
    BatchFailure,
    BatchingConfig,
    BatchItemSpan,
    BatchRun,
    TtsBatchItem,
    TtsBatchResult,
)
from .dispatcher import SpeechProvider
from .errors import SpeechSynthesisError
from .long_audio import count_words

logger = logging.getLogger(__name__)


def _same_context(item: TtsBatchItem, previous: TtsBatchItem) -> bool:
    return (item.metadata or None) == (previous.metadata or None)


def is_batchable(
    item: TtsBatchItem,
    config: BatchingConfig,
    previous: TtsBatchItem | None = None,
) -> bool:
    if count_words(item.text) > config.max_word_count:
        return False
    if previous is None:
        return True
    if config.require_same_context and not _same_context(item, previous):
        return False
    if item.voice and previous.voice and item.voice != previous.voice:
        return False
    return True


def group_into_batches(
    items: Sequence[TtsBatchItem], config: BatchingConfig | None = None
) -> list[list[TtsBatchItem]]:
    """Split ``items`` into consecutive batches, preserving order."""

    config = config or BatchingConfig()
    if not config.enable_batching:
        return [[item] for item in items]

    batches: list[list[TtsBatchItem]] = []
    current: list[TtsBatchItem] = []
    for item in items:
        previous = current[-1] if current else None
        fits = (
            previous is not None
            and len(current) < config.max_batch_size
            and is_batchable(previous, config)
            and is_batchable(item, config, previous)
        )
        if fits:
            current.append(item)
            continue
        if current:
            batches.append(current)
        current = [item]

    if current:
        batches.append(current)
    return batches


def combine_batch_items(
    batch: Sequence[TtsBatchItem], separator: str = " "
) -> tuple[str, list[BatchItemSpan]]:
    """Join item texts and record where each one starts and ends.

    ``combined[span.start_index:span.end_index] == span.text`` for every span.
    """

    combined = ""
    spans: list[BatchItemSpan] = []
    for position, item in enumerate(batch):
        if position:
            combined += separator
        start = len(combined)
        combined += item.text
        spans.append(
            BatchItemSpan(text=item.text, start_index=start, end_index=len(combined))
        )
    return combined, spans


def should_batch(items: Sequence[TtsBatchItem], config: BatchingConfig | None = None) -> bool:
    """True when grouping would save at least one provider call."""

    config = config or BatchingConfig()
    if not config.enable_batching or len(items) < 2:
        return False
    return len(group_into_batches(items, config)) < len(items)


class BatchProcessor:
    """Generate audio for batches of short responses through a speech provider."""

    def __init__(self, speech_provider: SpeechProvider, config: BatchingConfig | None = None):
        self.speech_provider = speech_provider
        self.config = config or BatchingConfig()

    async def _process_batch(
        self, batch: Sequence[TtsBatchItem], provider: str | None
    ) -> TtsBatchResult:
        combined, spans = combine_batch_items(batch, self.config.separator)
        audio = await self.speech_provider.generate(combined, batch[0].voice, provider)
        return TtsBatchResult(items=spans, **audio.model_dump())

    async def batch_tts(
        self, items: Sequence[TtsBatchItem], provider: str | None = None
    ) -> BatchRun:
        """
        Group ``items`` and generate one clip per batch.

        When any batch fails, all items are generated one by one instead;
        items that still fail are reported in ``BatchRun.failed``.
        """
        if not items:
            return BatchRun()

        batches = group_into_batches(items, self.config)
        try:
            results = await asyncio.gather(
                *(self._process_batch(batch, provider) for batch in batches)
            )
            return BatchRun(results=list(results))
        except SpeechSynthesisError as exc:
            logger.warning("Batch TTS failed (%s), falling back to individual items", exc)

        run = BatchRun()
        for item in items:
            try:
                run.results.append(await self._process_batch([item], provider))
            except SpeechSynthesisError as exc:
                logger.error("Individual TTS failed for item %r: %s", item.text[:50], exc)
                run.failed.append(BatchFailure(text=item.text, error=str(exc)))
        return run


__all__ = [
    "BatchProcessor",
    "combine_batch_items",
    "group_into_batches",
    "is_batchable",
    "should_batch",
]
