"""Text-to-speech API routes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response
from sse_starlette.sse import EventSourceResponse

from ..config import Settings, get_settings
from ..schemas.tts import ClearCacheRequest, TTSRequest
from ..services.tts import ChunkDispatcher, TTSVibesClient, chunk_text_for_synthesis
from ..services.tts.dispatcher import ChunkConverter, sse_message
from ..services.tts.text_chunker import count_words
from ..services.tts_cache import TTSCacheError, TTSCacheRepository

router = APIRouter(prefix="/api", tags=["tts"])

logger = logging.getLogger(__name__)

STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}
_TEXT_REQUIRED = "Text is required and must be a string"


def get_tts_client(settings: Settings = Depends(get_settings)) -> ChunkConverter:
    return TTSVibesClient(settings)


def get_tts_cache(request: Request) -> TTSCacheRepository | None:
    return getattr(request.app.state, "tts_cache", None)


def _require_cache(cache: TTSCacheRepository | None) -> TTSCacheRepository:
    if cache is None:
        raise TTSCacheError("TTS cache is disabled")
    return cache


def _resolve_voice(voice: str | None, settings: Settings) -> str:
    # Only an absent voice falls back; an explicit empty string is forwarded.
    return settings.tts_default_voice if voice is None else voice


def _failure(error: str, exc: Exception) -> JSONResponse:
    logger.error("%s: %s", error, exc)
    return JSONResponse({"error": error, "details": str(exc)}, status_code=500)


@router.post("/tts/stream", response_model=None)
async def stream_tts(
    payload: TTSRequest,
    converter: ChunkConverter = Depends(get_tts_client),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Stream chunked audio conversions through Server-Sent Events."""

    text = payload.validated_text()
    if text is None:
        return JSONResponse({"error": _TEXT_REQUIRED}, status_code=400)
    voice = _resolve_voice(payload.voice, settings)

    dispatcher = ChunkDispatcher(
        converter,
        max_chunk_length=settings.tts_max_chunk_length,
        chunk_delay=settings.tts_chunk_delay,
    )

    async def event_publisher():
        async for event in dispatcher.dispatch(text, voice):
            yield sse_message(event)

    return EventSourceResponse(event_publisher(), headers=STREAM_HEADERS, sep="\n")


@router.post("/tts", response_model=None)
async def convert_tts(
    payload: TTSRequest,
    converter: ChunkConverter = Depends(get_tts_client),
    cache: TTSCacheRepository | None = Depends(get_tts_cache),
    settings: Settings = Depends(get_settings),
) -> Any:
    """Convert text to audio chunks in one response, reusing cached audio."""

    text = payload.validated_text()
    if text is None:
        return JSONResponse({"error": _TEXT_REQUIRED}, status_code=400)
    voice = _resolve_voice(payload.voice, settings)

    if cache is not None:
        try:
            cached = await cache.get(text, voice)
        except TTSCacheError as exc:
            logger.warning("Cache check failed: %s", exc)
            cached = None
        if cached is not None:
            return {
                "success": True,
                "totalChunks": len(cached.text_chunks),
                "successfulChunks": len(cached.audio_chunks),
                "failedChunks": 0,
                "failedChunkIndices": [],
                "textChunks": cached.text_chunks,
                "audioChunks": cached.audio_chunks,
                "wordCounts": cached.word_counts,
                "fromCache": True,
                "message": f"Retrieved {len(cached.audio_chunks)} cached audio chunks.",
            }

    text_chunks = chunk_text_for_synthesis(text, settings.tts_max_chunk_length)
    audio_chunks: list[str] = []
    failed: list[int] = []

    for index, chunk in enumerate(text_chunks):
        audio = await converter.convert(chunk, voice)
        if audio:
            audio_chunks.append(audio)
        else:
            failed.append(index)

        if index < len(text_chunks) - 1 and settings.tts_batch_delay > 0:
            await asyncio.sleep(settings.tts_batch_delay)

    word_counts = [count_words(chunk) for chunk in text_chunks]

    if cache is not None and audio_chunks and not failed:
        try:
            await cache.save(text, audio_chunks, text_chunks, word_counts, voice)
        except TTSCacheError as exc:
            logger.warning("Failed to cache TTS audio: %s", exc)

    if failed:
        message = (
            f"Converted {len(audio_chunks)}/{len(text_chunks)} chunks successfully. "
            f"{len(failed)} chunks failed."
        )
    else:
        message = f"Successfully converted all {len(audio_chunks)} chunks to audio."

    return {
        "success": True,
        "totalChunks": len(text_chunks),
        "successfulChunks": len(audio_chunks),
        "failedChunks": len(failed),
        "failedChunkIndices": failed,
        "textChunks": text_chunks,
        "audioChunks": audio_chunks,
        "wordCounts": word_counts,
        "fromCache": False,
        "message": message,
    }


@router.get("/tts/cache-stats", response_model=None)
async def get_cache_stats(
    cache: TTSCacheRepository | None = Depends(get_tts_cache),
) -> Any:
    try:
        stats = await _require_cache(cache).get_stats()
    except TTSCacheError as exc:
        return _failure("Failed to get cache statistics", exc)

    total_kb = stats["totalSizeKB"]
    return {
        "success": True,
        "stats": {
            "totalEntries": stats["entryCount"],
            "totalSizeKB": total_kb,
            "totalSizeMB": round(total_kb / 1024, 2),
        },
    }


@router.delete("/tts/cache-stats", response_model=None)
async def cleanup_cache(
    clear_all: bool = Query(False, alias="clearAll"),
    older_than_days: int = Query(30, alias="olderThanDays", ge=0),
    cache: TTSCacheRepository | None = Depends(get_tts_cache),
) -> Any:
    """Remove cache entries by age, or all of them with ``clearAll=true``."""

    try:
        repo = _require_cache(cache)
        if clear_all:
            deleted = await repo.clear_all()
        else:
            deleted = await repo.cleanup(older_than_days)
    except TTSCacheError as exc:
        error = "Failed to clear all cache" if clear_all else "Failed to cleanup cache"
        return _failure(error, exc)

    if clear_all:
        message = f"Cleared all {deleted} cache entries"
    else:
        message = (
            f"Cleaned up {deleted} cache entries older than {older_than_days} days"
        )
    return {"success": True, "deletedCount": deleted, "message": message}


@router.post("/tts/clear-cache", response_model=None)
async def clear_cache_for_texts(
    payload: ClearCacheRequest,
    cache: TTSCacheRepository | None = Depends(get_tts_cache),
    settings: Settings = Depends(get_settings),
) -> Any:
    texts = payload.validated_texts()
    if texts is None:
        return JSONResponse({"error": "Texts array is required"}, status_code=400)
    voice = _resolve_voice(payload.voice, settings)

    try:
        deleted = await _require_cache(cache).clear_for(texts, voice)
    except TTSCacheError as exc:
        return _failure("Failed to clear TTS cache", exc)

    return {
        "success": True,
        "deletedCount": deleted,
        "message": f"Cleared {deleted} TTS cache entries for {len(texts)} texts",
    }


@router.delete("/tts/clear-cache", response_model=None)
async def clear_all_cache(
    cache: TTSCacheRepository | None = Depends(get_tts_cache),
) -> Any:
    try:
        deleted = await _require_cache(cache).clear_all()
    except TTSCacheError as exc:
        return _failure("Failed to clear all TTS cache", exc)

    return {
        "success": True,
        "deletedCount": deleted,
        "message": f"Cleared all {deleted} TTS cache entries",
    }


__all__ = ["get_tts_cache", "get_tts_client", "router"]
