"""Cached speech generation: the work behind ``POST /api/tts``."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from ..repository import TtsRepository
from ..schemas.costs import GenerationRecord
from ..schemas.tts import ELEVENLABS_VOICES, CachedAudio, GeneratedAudio
from ..utils.canonicalize import canonicalize
from .audio_storage import AudioStorage
from .tts.cost_estimator import check_daily_budget, resolve_pricing
from .tts.errors import BudgetExceededError, EmptyTextError
from .tts.long_audio import strip_ssml
from .tts_service import MP3_CONTENT_TYPE, TTSService

logger = logging.getLogger(__name__)
generation_logger = logging.getLogger("tts_backend.generations")

_DEBUG_MARKERS = re.compile(r"Tool succeeded|\[DEBUG\]|\[INFO\]|\[ERROR\]", re.IGNORECASE)
_VOICE_IDS_BY_NAME = {name.lower(): voice_id for voice_id, name in ELEVENLABS_VOICES.items()}


def sanitize_text(text: str) -> str:
    """Drop tool/debug log markers that leak into assistant replies."""

    return _DEBUG_MARKERS.sub("", text).strip()


class SpeechGenerationService:
    """Turn text into a cached, publicly reachable MP3 clip.

    Lookups are keyed by the canonical text hash, so responses that differ
    only in dates, times, casing or whitespace share one clip. Every call,
    hit or miss, appends a record to the generation log; the cost analysis
    and the daily budget check both read from it.
    """

    def __init__(
        self,
        tts_service: TTSService,
        repository: TtsRepository,
        storage: AudioStorage,
        *,
        cache_ttl: timedelta = timedelta(days=180),
        daily_budget_usd: float | None = None,
        pricing: Mapping[str, Any] | None = None,
    ) -> None:
        self._tts = tts_service
        self._repo = repository
        self._storage = storage
        self._cache_ttl = cache_ttl
        self._daily_budget_usd = daily_budget_usd
        self._pricing = resolve_pricing(pricing)
        # Per-hash locks, dropped once no caller holds or awaits them
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def repository(self) -> TtsRepository:
        return self._repo

    async def generate(
        self,
        text: str,
        voice: str | None = None,
        provider: str | None = None,
        *,
        mode: str | None = None,
        session_id: str | None = None,
        segment_count: int | None = None,
    ) -> GeneratedAudio:
        """
        Return audio for ``text``, synthesizing it only on a cache miss.

        Raises:
            EmptyTextError: Nothing is left after sanitizing
            ProviderUnavailableError: No provider has an API key
            BudgetExceededError: The daily spend cap has been reached
            SpeechProviderError: The provider rejected the request
            AudioStorageError: The clip could not be written
        """
        sanitized = sanitize_text(text)
        spoken = strip_ssml(sanitized)
        if not spoken:
            raise EmptyTextError("Text is empty after sanitization")

        # Keyed on the spoken words so SSML and plain variants share one entry
        canonical = canonicalize(spoken)
        lock = self._locks.setdefault(canonical.hash, asyncio.Lock())
        self._lock_users[canonical.hash] = self._lock_users.get(canonical.hash, 0) + 1
        try:
            async with lock:
                cached = await self._lookup(canonical.hash)
                if cached is not None:
                    await self._log(
                        GenerationRecord(
                            provider=cached.provider or "unknown",
                            text_length=len(sanitized),
                            cached=True,
                            mode=mode,
                            created_at=datetime.now(timezone.utc),
                            session_id=session_id,
                            voice_name=cached.voice_name,
                            text_hash=canonical.hash,
                            segment_count=segment_count,
                        )
                    )
                    return GeneratedAudio(
                        audio_url=cached.audio_url,
                        cached=True,
                        provider=cached.provider or "unknown",
                        expires_at=cached.expires_at.isoformat(),
                    )

                return await self._synthesize(
                    sanitized,
                    canonical.hash,
                    voice,
                    provider,
                    mode=mode,
                    session_id=session_id,
                    segment_count=segment_count,
                )
        finally:
            self._release_lock(canonical.hash)

    def _release_lock(self, text_hash: str) -> None:
        users = self._lock_users[text_hash] - 1
        if users:
            self._lock_users[text_hash] = users
            return
        del self._lock_users[text_hash]
        del self._locks[text_hash]

    async def _lookup(self, text_hash: str) -> CachedAudio | None:
        cached = await self._repo.get_cached_audio(text_hash)
        if cached is None:
            logger.debug("TTS cache miss: %s", text_hash)
            return None
        if cached.is_expired():
            logger.debug("TTS cache entry expired: %s", text_hash)
            return None
        logger.info("TTS cache hit: %s", text_hash)
        return cached

    async def _synthesize(
        self,
        text: str,
        text_hash: str,
        voice: str | None,
        provider_preference: str | None,
        *,
        mode: str | None,
        session_id: str | None,
        segment_count: int | None,
    ) -> GeneratedAudio:
        provider = self._tts.select_provider(provider_preference)

        if self._daily_budget_usd is not None:
            status = await check_daily_budget(
                self._repo, self._daily_budget_usd, pricing=self._pricing
            )
            if status.exceeded:
                raise BudgetExceededError(
                    f"Daily TTS budget of ${self._daily_budget_usd:.2f} reached"
                )

        voice_name = self._resolve_voice(provider, voice)
        # OpenAI would read SSML tags aloud
        spoken = strip_ssml(text) if provider == "openai" else text
        audio = await self._tts.synthesize(spoken, provider, voice_name)
        audio_url = await self._storage.save(text_hash, audio)

        expires_at = datetime.now(timezone.utc) + self._cache_ttl
        await self._repo.put_cached_audio(
            text_hash,
            text,
            voice_name,
            audio_url,
            expires_at,
            provider=provider,
            content_type=MP3_CONTENT_TYPE,
        )

        price = self._pricing.get(provider)
        await self._log(
            GenerationRecord(
                provider=provider,
                text_length=len(text),
                cached=False,
                estimated_cost=len(text) * price.price_per_character if price else None,
                mode=mode,
                created_at=datetime.now(timezone.utc),
                session_id=session_id,
                voice_name=voice_name,
                text_hash=text_hash,
                segment_count=segment_count,
            )
        )
        logger.info("TTS generation successful: %s via %s", text_hash, provider)
        return GeneratedAudio(
            audio_url=audio_url,
            cached=False,
            provider=provider,
            expires_at=expires_at.isoformat(),
        )

    def _resolve_voice(self, provider: str, voice: str | None) -> str:
        if not voice:
            return self._tts.default_voice(provider)
        if provider == "elevenlabs":
            return _VOICE_IDS_BY_NAME.get(voice.lower(), voice)
        return voice

    async def _log(self, record: GenerationRecord) -> None:
        await self._repo.append_generation_record(record)
        generation_logger.info(
            "provider=%s cached=%s chars=%d mode=%s session=%s hash=%s",
            record.provider,
            record.cached,
            record.text_length,
            record.mode or "-",
            record.session_id or "-",
            record.text_hash,
        )


__all__ = ["SpeechGenerationService", "sanitize_text"]
