"""
Ordered fan-out of chunk conversions for the streaming TTS route.

Architecture:
    text → split_text_into_chunks → [Task(0), Task(1), ... Task(n-1)]
                                          │
                                          ▼
                              await Task(i) for i in 0..n-1 → StreamEvent

Every chunk's conversion is started before any result is awaited, so the
upstream calls overlap. Results are then drained strictly by index: a chunk
that finishes early simply waits in its task until its turn. The consumer
therefore always sees chunk events in increasing index order.

Events produced per run:
    MetadataEvent → ChunkEvent × n → CompletionEvent
or, when the orchestration itself fails:
    [MetadataEvent → ChunkEvent × k] → ErrorEvent
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Callable, Optional, Protocol, Sequence

from .text_chunker import DEFAULT_MAX_CHUNK_LENGTH, split_text_into_chunks
from .types import (
    ChunkEvent,
    ChunkResult,
    CompletionEvent,
    ErrorEvent,
    MetadataEvent,
    StreamEvent,
    TextChunk,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_DELAY_SECONDS = 0.05

# Strong references so conversions outlive an abandoned stream.
_in_flight: set[asyncio.Task] = set()


class ChunkConverter(Protocol):
    async def convert(self, chunk: str, voice: str) -> Optional[str]: ...


Splitter = Callable[[str, int], Sequence[TextChunk]]


class ChunkDispatcher:
    """
    Convert every chunk concurrently and yield results in chunk order.

    Attributes:
        converter: Object exposing ``async convert(chunk, voice)``
        max_chunk_length: Passed through to the splitter
        chunk_delay: Pause in seconds between consecutive chunk events
    """

    def __init__(
        self,
        converter: ChunkConverter,
        *,
        max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH,
        chunk_delay: float = DEFAULT_CHUNK_DELAY_SECONDS,
        splitter: Splitter = split_text_into_chunks,
    ):
        self.converter = converter
        self.max_chunk_length = max_chunk_length
        self.chunk_delay = chunk_delay
        self._splitter = splitter

    async def dispatch(self, text: str, voice: str) -> AsyncIterator[StreamEvent]:
        """
        Stream the conversion of ``text`` as ordered events.

        Per-chunk failures surface as unsuccessful chunk events and never stop
        the run. Anything else that goes wrong ends the stream with a single
        ``ErrorEvent`` and no completion.

        Closing the iterator early, or cancelling the task consuming it, does
        not cancel conversions already started; their results are dropped.
        """
        try:
            chunks = list(self._splitter(text, self.max_chunk_length))
            yield MetadataEvent(chunks=tuple(chunks))

            pending = [self._launch(chunk, voice) for chunk in chunks]
            logger.debug("Dispatched %d TTS chunk conversions", len(pending))

            for position, task in enumerate(pending):
                # Cancelling the consumer must not cancel the conversion.
                result = await asyncio.shield(task)
                yield ChunkEvent(result=result)

                if position < len(pending) - 1 and self.chunk_delay > 0:
                    await asyncio.sleep(self.chunk_delay)

            yield CompletionEvent(total_chunks=len(chunks))
        except Exception as exc:
            logger.error("TTS stream aborted: %s", exc, exc_info=True)
            yield ErrorEvent(message=str(exc) or "Unknown error")

    def _launch(self, chunk: TextChunk, voice: str) -> asyncio.Task:
        task = asyncio.create_task(self._convert(chunk, voice))
        _in_flight.add(task)
        task.add_done_callback(_in_flight.discard)
        return task

    async def _convert(self, chunk: TextChunk, voice: str) -> ChunkResult:
        try:
            audio = await self.converter.convert(chunk.text, voice)
        except Exception as exc:
            logger.warning("TTS chunk %d failed: %s", chunk.index, exc)
            return ChunkResult(
                index=chunk.index,
                source_text=chunk.text,
                audio_payload=None,
                error_message=str(exc) or "Unknown error",
            )
        return ChunkResult(index=chunk.index, source_text=chunk.text, audio_payload=audio)


def sse_message(event: StreamEvent) -> dict[str, str]:
    """Render an event as an SSE message carrying a JSON ``data`` field."""

    return {"data": json.dumps(event.to_payload())}


__all__ = [
    "ChunkConverter",
    "ChunkDispatcher",
    "DEFAULT_CHUNK_DELAY_SECONDS",
    "sse_message",
]
