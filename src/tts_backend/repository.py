"""SQLite-backed repository for the audio cache and the generation log."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from .schemas.costs import GenerationRecord
from .schemas.tts import CachedAudio


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _format_db_timestamp(value: datetime) -> str:
    """Store timestamps as UTC ISO8601 so string comparison follows time order."""

    return _to_utc(value).isoformat()


def _parse_db_timestamp(value: str) -> datetime:
    return _to_utc(datetime.fromisoformat(value))


def _row_to_cached_audio(row: aiosqlite.Row) -> CachedAudio:
    return CachedAudio(
        text_hash=row["text_hash"],
        audio_url=row["audio_url"],
        content_type=row["content_type"],
        bitrate=row["bitrate"],
        expires_at=_parse_db_timestamp(row["expires_at"]),
        voice_name=row["voice_name"],
        provider=row["provider"],
    )


def _row_to_record(row: aiosqlite.Row) -> GenerationRecord:
    record: dict[str, Any] = dict(row)
    record.pop("id", None)
    record["cached"] = bool(record["cached"])
    record["created_at"] = _parse_db_timestamp(record["created_at"])
    return GenerationRecord.model_validate(record)


class TtsRepository:
    """Persist generated-audio cache entries and generation log records.

    Cache entries are content-addressed by ``text_hash`` and immutable apart
    from expiry, so concurrent writers of the same hash need no locking; the
    last upsert wins with an equivalent value.
    """

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS audio_cache (
                text_hash TEXT PRIMARY KEY,
                text TEXT NOT NULL,
                voice_name TEXT,
                provider TEXT,
                audio_url TEXT NOT NULL,
                content_type TEXT NOT NULL DEFAULT 'audio/mpeg',
                bitrate INTEGER,
                expires_at TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS generation_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                provider TEXT NOT NULL,
                voice_name TEXT,
                text_hash TEXT,
                text_length INTEGER NOT NULL,
                cached INTEGER NOT NULL DEFAULT 0,
                mode TEXT,
                segment_count INTEGER,
                estimated_cost REAL,
                actual_cost REAL,
                session_id TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_audio_cache_expires_at ON audio_cache(expires_at);
            CREATE INDEX IF NOT EXISTS idx_generation_log_created_at ON generation_log(created_at);
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def get_cached_audio(self, text_hash: str) -> CachedAudio | None:
        """Return the cache entry for ``text_hash``, expired or not.

        Callers must treat an expired entry as a miss.
        """

        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT * FROM audio_cache WHERE text_hash = ?",
            (text_hash,),
        )
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return None
        return _row_to_cached_audio(row)

    async def put_cached_audio(
        self,
        text_hash: str,
        text: str,
        voice_name: str | None,
        audio_url: str,
        expires_at: datetime,
        *,
        provider: str | None = None,
        content_type: str = "audio/mpeg",
        bitrate: int | None = None,
    ) -> CachedAudio:
        assert self._connection is not None
        await self._connection.execute(
            """
            INSERT INTO audio_cache (
                text_hash, text, voice_name, provider, audio_url,
                content_type, bitrate, expires_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(text_hash) DO UPDATE SET
                text = excluded.text,
                voice_name = excluded.voice_name,
                provider = excluded.provider,
                audio_url = excluded.audio_url,
                content_type = excluded.content_type,
                bitrate = excluded.bitrate,
                expires_at = excluded.expires_at
            """,
            (
                text_hash,
                text,
                voice_name,
                provider,
                audio_url,
                content_type,
                bitrate,
                _format_db_timestamp(expires_at),
            ),
        )
        await self._connection.commit()
        return CachedAudio(
            text_hash=text_hash,
            audio_url=audio_url,
            content_type=content_type,
            bitrate=bitrate,
            expires_at=_to_utc(expires_at),
            voice_name=voice_name,
            provider=provider,
        )

    async def delete_expired_audio(self, now: datetime | None = None) -> list[str]:
        """Remove expired cache entries and return their audio URLs."""

        assert self._connection is not None
        cutoff = _format_db_timestamp(now or datetime.now(timezone.utc))
        cursor = await self._connection.execute(
            "SELECT audio_url FROM audio_cache WHERE expires_at <= ?",
            (cutoff,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        await self._connection.execute(
            "DELETE FROM audio_cache WHERE expires_at <= ?",
            (cutoff,),
        )
        await self._connection.commit()
        return [row["audio_url"] for row in rows]

    async def append_generation_record(self, record: GenerationRecord) -> None:
        assert self._connection is not None
        await self._connection.execute(
            """
            INSERT INTO generation_log (
                provider, voice_name, text_hash, text_length, cached, mode,
                segment_count, estimated_cost, actual_cost, session_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.provider,
                record.voice_name,
                record.text_hash,
                record.text_length,
                int(record.cached),
                record.mode,
                record.segment_count,
                record.estimated_cost,
                record.actual_cost,
                record.session_id,
                _format_db_timestamp(record.created_at),
            ),
        )
        await self._connection.commit()

    async def list_generation_records(
        self, start: datetime, end: datetime
    ) -> list[GenerationRecord]:
        """Return log records created within ``[start, end]``, oldest first."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            SELECT * FROM generation_log
            WHERE created_at >= ? AND created_at <= ?
            ORDER BY created_at ASC, id ASC
            """,
            (_format_db_timestamp(start), _format_db_timestamp(end)),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [_row_to_record(row) for row in rows]


__all__ = ["TtsRepository"]
