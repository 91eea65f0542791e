from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from tts_backend.repository import TtsRepository
from tts_backend.schemas.costs import GenerationRecord
from tts_backend.services.audio_storage import AudioStorage
from tts_backend.services.speech_generation import SpeechGenerationService, sanitize_text
from tts_backend.services.tts.dispatcher import SegmentAudioDispatcher
from tts_backend.services.tts.errors import (
    BudgetExceededError,
    EmptyTextError,
    ProviderUnavailableError,
    SpeechProviderError,
)
from tts_backend.services.tts.long_audio import process_long_audio


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeTTSService:
    def __init__(self, providers=("openai",)) -> None:
        self.available_providers = list(providers)
        self.synthesize = AsyncMock(return_value=b"ID3audio")

    def select_provider(self, preference=None) -> str:
        if not self.available_providers:
            raise ProviderUnavailableError("No TTS provider configured")
        if preference in self.available_providers:
            return preference
        return self.available_providers[0]

    def default_voice(self, provider: str) -> str:
        return "pNInz6obpgDQGcFmaJgB" if provider == "elevenlabs" else "alloy"


@pytest.fixture
async def repository(tmp_path):
    repo = TtsRepository(tmp_path / "tts.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


@pytest.fixture
def storage(tmp_path):
    return AudioStorage(tmp_path / "audio", "http://localhost:8000")


async def _records(repository: TtsRepository) -> list[GenerationRecord]:
    now = datetime.now(timezone.utc)
    return await repository.list_generation_records(now - timedelta(days=1), now + timedelta(minutes=1))


def test_sanitize_text_strips_debug_markers() -> None:
    assert sanitize_text("[DEBUG] Tool succeeded Your booking is done.") == "Your booking is done."
    assert sanitize_text("  [info] [ERROR]  ") == ""


@pytest.mark.anyio
async def test_miss_then_hit_for_equivalent_text(repository, storage):
    tts = FakeTTSService()
    service = SpeechGenerationService(tts, repository, storage)

    first = await service.generate("Your appointment is at 3:30 PM on 2024-05-01.")
    second = await service.generate("your appointment is at 10:00 am on 2025-01-15.  ")

    assert first.cached is False
    assert first.provider == "openai"
    assert first.audio_url.startswith("http://localhost:8000/audio/")
    assert first.expires_at is not None
    assert second.cached is True
    assert second.audio_url == first.audio_url
    assert second.provider == "openai"
    tts.synthesize.assert_awaited_once()

    records = await _records(repository)
    assert [record.cached for record in records] == [False, True]
    assert records[0].estimated_cost == pytest.approx(len("Your appointment is at 3:30 PM on 2024-05-01.") * 0.000015)


@pytest.mark.anyio
async def test_expired_entry_is_regenerated(repository, storage):
    tts = FakeTTSService()
    service = SpeechGenerationService(tts, repository, storage, cache_ttl=timedelta(seconds=-1))

    await service.generate("Hello there.")
    result = await service.generate("Hello there.")

    assert result.cached is False
    assert tts.synthesize.await_count == 2


@pytest.mark.anyio
async def test_concurrent_requests_synthesize_once(repository, storage):
    tts = FakeTTSService()

    async def slow_synthesize(text, provider, voice=None):
        await asyncio.sleep(0.05)
        return b"ID3audio"

    tts.synthesize.side_effect = slow_synthesize
    service = SpeechGenerationService(tts, repository, storage)

    results = await asyncio.gather(*(service.generate("Same words.") for _ in range(5)))

    assert tts.synthesize.await_count == 1
    assert sum(not result.cached for result in results) == 1
    assert len({result.audio_url for result in results}) == 1


@pytest.mark.anyio
async def test_empty_text_after_sanitizing(repository, storage):
    service = SpeechGenerationService(FakeTTSService(), repository, storage)

    with pytest.raises(EmptyTextError):
        await service.generate("[DEBUG] Tool succeeded")


@pytest.mark.anyio
async def test_no_provider_configured(repository, storage):
    service = SpeechGenerationService(FakeTTSService(providers=()), repository, storage)

    with pytest.raises(ProviderUnavailableError):
        await service.generate("Hello.")


@pytest.mark.anyio
async def test_provider_failure_is_not_cached(repository, storage):
    tts = FakeTTSService()
    tts.synthesize.side_effect = SpeechProviderError("OpenAI API error (500): boom", status_code=500)
    service = SpeechGenerationService(tts, repository, storage)

    with pytest.raises(SpeechProviderError):
        await service.generate("Hello.")

    assert await _records(repository) == []
    assert not list(storage.directory.glob("*.mp3"))


@pytest.mark.anyio
async def test_budget_exceeded_blocks_synthesis(repository, storage):
    await repository.append_generation_record(
        GenerationRecord(
            provider="openai",
            text_length=100,
            actual_cost=60.0,
            created_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
    )
    tts = FakeTTSService()
    service = SpeechGenerationService(tts, repository, storage, daily_budget_usd=50.0)

    with pytest.raises(BudgetExceededError):
        await service.generate("Hello.")
    tts.synthesize.assert_not_awaited()


@pytest.mark.anyio
async def test_voice_names_and_ssml_per_provider(repository, storage):
    tts = FakeTTSService(providers=("elevenlabs", "openai"))
    service = SpeechGenerationService(tts, repository, storage)

    await service.generate("Welcome back.", voice="Rachel", provider="elevenlabs")
    await service.generate('<speak>Hi<break time="300ms"/> there.</speak>', provider="openai")

    first, second = tts.synthesize.await_args_list
    assert first.args == ("Welcome back.", "elevenlabs", "21m00Tcm4TlvDq8ikWAM")
    assert "<" not in second.args[0]
    assert second.args[1:] == ("openai", "alloy")


@pytest.mark.anyio
async def test_log_record_carries_request_context(repository, storage):
    service = SpeechGenerationService(FakeTTSService(), repository, storage)

    await service.generate("Done.", mode="brief", session_id="session-9", segment_count=2)

    (record,) = await _records(repository)
    assert record.mode == "brief"
    assert record.session_id == "session-9"
    assert record.segment_count == 2
    assert record.text_hash is not None


@pytest.mark.anyio
async def test_ssml_and_plain_segment_text_share_the_segment_hash(repository, storage):
    tts = FakeTTSService()
    service = SpeechGenerationService(tts, repository, storage)
    (segment,) = process_long_audio("Hello there. How are you?", "full").segments
    assert segment.text != segment.plain_text

    first = await service.generate(segment.text)
    second = await service.generate(segment.plain_text)

    assert first.cached is False
    assert second.cached is True
    assert await repository.get_cached_audio(segment.hash) is not None
    tts.synthesize.assert_awaited_once()


@pytest.mark.anyio
async def test_markup_only_text_is_empty(repository, storage):
    service = SpeechGenerationService(FakeTTSService(), repository, storage)

    with pytest.raises(EmptyTextError):
        await service.generate('<speak><break time="300ms"/></speak>')


@pytest.mark.anyio
async def test_locks_are_released_after_success_and_failure(repository, storage):
    tts = FakeTTSService()

    async def slow_synthesize(text, provider, voice=None):
        await asyncio.sleep(0.01)
        if "fail" in text:
            raise SpeechProviderError("OpenAI API error (500): boom", status_code=500)
        return b"ID3audio"

    tts.synthesize.side_effect = slow_synthesize
    service = SpeechGenerationService(tts, repository, storage)

    await asyncio.gather(*(service.generate("Same words.") for _ in range(5)))
    with pytest.raises(SpeechProviderError):
        await service.generate("Please fail.")

    assert tts.synthesize.await_count == 2
    assert service._locks == {}
    assert service._lock_users == {}


@pytest.mark.anyio
async def test_long_audio_records_mode_and_segment_count(repository, storage):
    service = SpeechGenerationService(FakeTTSService(), repository, storage)
    dispatcher = SegmentAudioDispatcher(service)
    text = " ".join(f"Sentence number {n} is here." for n in range(30))

    output = await dispatcher.process_and_generate_long_audio(
        text, "full", config={"max_words": 20}
    )

    records = await _records(repository)
    assert len(records) == len(output.segments) > 1
    assert {record.mode for record in records} == {"full"}
    assert {record.segment_count for record in records} == {len(output.segments)}
