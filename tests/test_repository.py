from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tts_backend.repository import TtsRepository
from tts_backend.schemas.costs import GenerationRecord


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def repository(tmp_path):
    repo = TtsRepository(tmp_path / "tts.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


@pytest.mark.anyio
async def test_cache_roundtrip(repository):
    expires_at = datetime.now(timezone.utc) + timedelta(days=180)

    await repository.put_cached_audio(
        "abc123",
        "Your appointment is at <TIME>.",
        "alloy",
        "http://localhost:8000/audio/abc123.mp3",
        expires_at,
        provider="openai",
    )

    cached = await repository.get_cached_audio("abc123")

    assert cached is not None
    assert cached.audio_url == "http://localhost:8000/audio/abc123.mp3"
    assert cached.provider == "openai"
    assert cached.voice_name == "alloy"
    assert cached.content_type == "audio/mpeg"
    assert cached.expires_at == expires_at
    assert not cached.is_expired()


@pytest.mark.anyio
async def test_missing_cache_entry(repository):
    assert await repository.get_cached_audio("nope") is None


@pytest.mark.anyio
async def test_upsert_replaces_entry(repository):
    expires_at = datetime.now(timezone.utc) + timedelta(days=1)
    await repository.put_cached_audio("h", "t", None, "http://a/audio/h.mp3", expires_at)
    await repository.put_cached_audio(
        "h", "t", "nova", "http://b/audio/h.mp3", expires_at, provider="openai"
    )

    cached = await repository.get_cached_audio("h")

    assert cached is not None
    assert cached.audio_url == "http://b/audio/h.mp3"
    assert cached.voice_name == "nova"


@pytest.mark.anyio
async def test_delete_expired_audio_returns_urls(repository):
    now = datetime.now(timezone.utc)
    await repository.put_cached_audio("old", "t", None, "http://x/audio/old.mp3", now - timedelta(hours=1))
    await repository.put_cached_audio("new", "t", None, "http://x/audio/new.mp3", now + timedelta(hours=1))

    removed = await repository.delete_expired_audio(now)

    assert removed == ["http://x/audio/old.mp3"]
    assert await repository.get_cached_audio("old") is None
    assert await repository.get_cached_audio("new") is not None


@pytest.mark.anyio
async def test_generation_records_filtered_by_time(repository):
    now = datetime.now(timezone.utc)
    records = [
        GenerationRecord(
            provider="openai",
            text_length=120,
            created_at=now - timedelta(days=40),
        ),
        GenerationRecord(
            provider="elevenlabs",
            text_length=80,
            cached=True,
            mode="brief",
            session_id="session-1",
            text_hash="h1",
            created_at=now - timedelta(days=2),
        ),
        GenerationRecord(
            provider="openai",
            text_length=300,
            estimated_cost=0.0045,
            mode="full",
            segment_count=3,
            created_at=now - timedelta(hours=1),
        ),
    ]
    for record in records:
        await repository.append_generation_record(record)

    listed = await repository.list_generation_records(now - timedelta(days=30), now)

    assert listed == records[1:]
    assert listed[0].cached is True
    assert listed[1].segment_count == 3


@pytest.mark.anyio
async def test_naive_range_is_treated_as_utc(repository):
    created = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
    await repository.append_generation_record(
        GenerationRecord(provider="openai", text_length=10, created_at=created)
    )

    listed = await repository.list_generation_records(
        datetime(2025, 1, 15, 0, 0), datetime(2025, 1, 16, 0, 0)
    )

    assert [record.created_at for record in listed] == [created]
