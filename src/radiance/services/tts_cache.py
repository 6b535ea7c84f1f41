"""SQLite-backed cache of synthesized TTS audio."""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Sequence

import aiosqlite

logger = logging.getLogger(__name__)


class TTSCacheError(Exception):
    """Raised when the cache database cannot be read or written."""


@dataclass(frozen=True)
class CachedAudio:
    audio_chunks: list[str]
    text_chunks: list[str]
    word_counts: list[int]


def cache_key(text: str, voice: str) -> str:
    """Return the content hash identifying ``text`` spoken with ``voice``."""

    return hashlib.sha256(f"{text}:{voice}".encode("utf-8")).hexdigest()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TTSCacheRepository:
    """Persist converted audio keyed by text and voice."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure the table exists."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS tts_audio_cache (
                text_hash TEXT PRIMARY KEY,
                original_text TEXT NOT NULL,
                audio_chunks TEXT NOT NULL,
                text_chunks TEXT NOT NULL,
                word_counts TEXT NOT NULL,
                voice TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_tts_audio_cache_created
                ON tts_audio_cache(created_at);
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise TTSCacheError("TTS cache is not initialized")
        return self._connection

    async def get(self, text: str, voice: str) -> CachedAudio | None:
        conn = self._require_connection()
        try:
            async with conn.execute(
                """
                SELECT audio_chunks, text_chunks, word_counts
                FROM tts_audio_cache WHERE text_hash = ?
                """,
                (cache_key(text, voice),),
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise TTSCacheError(str(exc)) from exc

        if row is None:
            return None
        try:
            return CachedAudio(
                audio_chunks=json.loads(row["audio_chunks"]),
                text_chunks=json.loads(row["text_chunks"]),
                word_counts=json.loads(row["word_counts"]),
            )
        except json.JSONDecodeError as exc:
            raise TTSCacheError(f"Corrupt cache entry: {exc.msg}") from exc

    async def save(
        self,
        text: str,
        audio_chunks: Sequence[str],
        text_chunks: Sequence[str],
        word_counts: Sequence[int],
        voice: str,
    ) -> None:
        conn = self._require_connection()
        now = _utc_now().isoformat()
        try:
            await conn.execute(
                """
                INSERT INTO tts_audio_cache (
                    text_hash, original_text, audio_chunks, text_chunks,
                    word_counts, voice, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(text_hash) DO UPDATE SET
                    audio_chunks = excluded.audio_chunks,
                    text_chunks = excluded.text_chunks,
                    word_counts = excluded.word_counts,
                    updated_at = excluded.updated_at
                """,
                (
                    cache_key(text, voice),
                    text,
                    json.dumps(list(audio_chunks)),
                    json.dumps(list(text_chunks)),
                    json.dumps(list(word_counts)),
                    voice,
                    now,
                    now,
                ),
            )
            await conn.commit()
        except sqlite3.Error as exc:
            raise TTSCacheError(str(exc)) from exc

    async def get_stats(self) -> dict[str, int]:
        """Return the entry count and an estimated size in kilobytes."""

        conn = self._require_connection()
        try:
            async with conn.execute(
                "SELECT audio_chunks, text_chunks FROM tts_audio_cache"
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as exc:
            raise TTSCacheError(str(exc)) from exc

        total_kb = 0.0
        try:
            for row in rows:
                audio = json.loads(row["audio_chunks"])
                audio_size = sum(len(chunk) for chunk in audio)
                text_size = len(json.dumps(json.loads(row["text_chunks"])))
                total_kb += (audio_size + text_size) / 1024
        except json.JSONDecodeError as exc:
            raise TTSCacheError(f"Corrupt cache entry: {exc.msg}") from exc
        except TypeError as exc:
            raise TTSCacheError(f"Corrupt cache entry: {exc}") from exc

        return {"entryCount": len(rows), "totalSizeKB": round(total_kb)}

    async def cleanup(self, older_than_days: int = 30) -> int:
        """Delete entries created more than ``older_than_days`` days ago."""

        cutoff = (_utc_now() - timedelta(days=older_than_days)).isoformat()
        deleted = await self._delete("created_at < ?", (cutoff,))
        logger.info("Cleaned up %d old TTS cache entries", deleted)
        return deleted

    async def clear_all(self) -> int:
        deleted = await self._delete("1 = 1", ())
        logger.info("Cleared all %d TTS cache entries", deleted)
        return deleted

    async def clear_for(self, texts: Iterable[str], voice: str) -> int:
        keys = [cache_key(text, voice) for text in texts]
        if not keys:
            return 0
        placeholders = ", ".join("?" for _ in keys)
        return await self._delete(f"text_hash IN ({placeholders})", tuple(keys))

    async def _delete(self, where: str, params: tuple) -> int:
        conn = self._require_connection()
        try:
            cursor = await conn.execute(
                f"DELETE FROM tts_audio_cache WHERE {where}", params
            )
            await conn.commit()
        except sqlite3.Error as exc:
            raise TTSCacheError(str(exc)) from exc
        return max(cursor.rowcount, 0)


__all__ = ["CachedAudio", "TTSCacheError", "TTSCacheRepository", "cache_key"]
