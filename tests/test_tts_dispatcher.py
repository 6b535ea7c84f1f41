"""Tests for the ordered streaming dispatcher."""

from __future__ import annotations

import asyncio
import random
from typing import Optional

import pytest

from radiance.services.tts.dispatcher import ChunkDispatcher, sse_message
from radiance.services.tts.types import (
    ChunkEvent,
    CompletionEvent,
    ErrorEvent,
    MetadataEvent,
)


class FakeConverter:
    """Converter returning ``audio-<text>`` after an optional per-chunk delay."""

    def __init__(
        self,
        delays: Optional[dict[str, float]] = None,
        fail_on: frozenset[str] = frozenset(),
        raise_on: frozenset[str] = frozenset(),
    ) -> None:
        self.delays = delays or {}
        self.fail_on = fail_on
        self.raise_on = raise_on
        self.started: list[str] = []
        self.finished: list[str] = []

    async def convert(self, chunk: str, voice: str) -> Optional[str]:
        self.started.append(chunk)
        await asyncio.sleep(self.delays.get(chunk, 0))
        self.finished.append(chunk)
        if chunk in self.raise_on:
            raise RuntimeError(f"boom: {chunk}")
        if chunk in self.fail_on:
            return None
        return f"audio-{chunk}:{voice}"


def _sentences(count: int) -> list[str]:
    return [f"Sentence number {i} {'x' * 20}." for i in range(count)]


async def _collect(dispatcher: ChunkDispatcher, text: str, voice: str = "v"):
    return [event async for event in dispatcher.dispatch(text, voice)]


@pytest.mark.asyncio
async def test_events_follow_metadata_chunks_completion():
    converter = FakeConverter()
    dispatcher = ChunkDispatcher(converter, chunk_delay=0)

    events = await _collect(dispatcher, "See your doctor. Take rest. Drink fluids.")

    assert isinstance(events[0], MetadataEvent)
    assert events[0].to_payload() == {
        "type": "metadata",
        "totalChunks": 1,
        "textChunks": ["See your doctor. Take rest. Drink fluids."],
    }
    assert isinstance(events[1], ChunkEvent)
    assert events[1].to_payload() == {
        "type": "chunk",
        "index": 0,
        "text": "See your doctor. Take rest. Drink fluids.",
        "audioData": "audio-See your doctor. Take rest. Drink fluids.:v",
        "success": True,
    }
    assert events[2] == CompletionEvent(total_chunks=1)


@pytest.mark.asyncio
async def test_chunk_events_are_emitted_in_index_order_despite_random_delays():
    sentences = _sentences(8)
    rng = random.Random(1234)
    delays = {sentence: rng.uniform(0, 0.05) for sentence in sentences}
    # Make the last chunk finish first and the first chunk finish last.
    delays[sentences[0]] = 0.08
    delays[sentences[-1]] = 0
    converter = FakeConverter(delays=delays)
    dispatcher = ChunkDispatcher(converter, max_chunk_length=40, chunk_delay=0)

    events = await _collect(dispatcher, " ".join(sentences))

    chunk_events = [event for event in events if isinstance(event, ChunkEvent)]
    assert [event.result.index for event in chunk_events] == list(range(8))
    assert [event.result.source_text for event in chunk_events] == sentences
    assert converter.finished[0] != sentences[0]
    assert isinstance(events[-1], CompletionEvent)
    assert events[-1].total_chunks == 8


@pytest.mark.asyncio
async def test_all_conversions_start_before_first_result_is_emitted():
    sentences = _sentences(4)
    converter = FakeConverter(delays={sentences[0]: 0.02})
    dispatcher = ChunkDispatcher(converter, max_chunk_length=40, chunk_delay=0)

    stream = dispatcher.dispatch(" ".join(sentences), "v")
    assert isinstance(await stream.__anext__(), MetadataEvent)
    first_chunk = await stream.__anext__()

    assert first_chunk.result.index == 0
    assert converter.started == sentences
    await stream.aclose()


@pytest.mark.asyncio
async def test_failed_chunk_is_reported_and_stream_continues():
    sentences = _sentences(3)
    converter = FakeConverter(fail_on=frozenset({sentences[1]}))
    dispatcher = ChunkDispatcher(converter, max_chunk_length=40, chunk_delay=0)

    events = await _collect(dispatcher, " ".join(sentences))

    assert events[0].total_chunks == 3
    results = [event.result for event in events[1:4]]
    assert [(r.index, r.succeeded) for r in results] == [
        (0, True),
        (1, False),
        (2, True),
    ]
    assert results[1].audio_payload is None
    assert events[4] == CompletionEvent(total_chunks=3)
    assert len(events) == 5


@pytest.mark.asyncio
async def test_raising_converter_is_a_non_fatal_chunk_error():
    sentences = _sentences(3)
    converter = FakeConverter(raise_on=frozenset({sentences[0]}))
    dispatcher = ChunkDispatcher(converter, max_chunk_length=40, chunk_delay=0)

    events = await _collect(dispatcher, " ".join(sentences))

    payload = events[1].to_payload()
    assert payload["success"] is False
    assert payload["audioData"] is None
    assert payload["error"] == f"boom: {sentences[0]}"
    assert "error" not in events[2].to_payload()
    assert isinstance(events[-1], CompletionEvent)


@pytest.mark.asyncio
async def test_empty_text_yields_single_chunk_and_completion():
    dispatcher = ChunkDispatcher(FakeConverter(fail_on=frozenset({""})), chunk_delay=0)

    events = await _collect(dispatcher, "")

    assert [type(event) for event in events] == [
        MetadataEvent,
        ChunkEvent,
        CompletionEvent,
    ]
    assert events[0].total_chunks == 1
    assert events[1].result.source_text == ""


@pytest.mark.asyncio
async def test_orchestration_failure_emits_single_error_event():
    def broken_splitter(text: str, max_length: int):
        raise ValueError("splitter exploded")

    dispatcher = ChunkDispatcher(FakeConverter(), splitter=broken_splitter)

    events = await _collect(dispatcher, "Hello.")

    assert events == [ErrorEvent(message="splitter exploded")]
    assert events[0].to_payload() == {"type": "error", "error": "splitter exploded"}


@pytest.mark.asyncio
async def test_pacing_delay_applies_between_chunks_only(monkeypatch):
    sleeps: list[float] = []
    real_sleep = asyncio.sleep

    async def recording_sleep(delay, *args, **kwargs):
        if delay == 0.05:
            sleeps.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(
        "radiance.services.tts.dispatcher.asyncio.sleep", recording_sleep
    )
    dispatcher = ChunkDispatcher(FakeConverter(), max_chunk_length=40)

    await _collect(dispatcher, " ".join(_sentences(3)))

    assert sleeps == [0.05, 0.05]


@pytest.mark.asyncio
async def test_closing_stream_early_lets_conversions_finish():
    sentences = _sentences(3)
    converter = FakeConverter(delays={sentences[2]: 0.02})
    dispatcher = ChunkDispatcher(converter, max_chunk_length=40, chunk_delay=0)

    stream = dispatcher.dispatch(" ".join(sentences), "v")
    await stream.__anext__()
    await stream.__anext__()
    await stream.aclose()

    await asyncio.sleep(0.05)
    assert sorted(converter.finished) == sorted(sentences)


@pytest.mark.asyncio
async def test_cancelling_consumer_mid_wait_lets_conversions_finish():
    sentences = ["Aaaaa.", "Bbbbb.", "Ccccc."]
    converter = FakeConverter(delays={sentence: 0.05 for sentence in sentences})
    cancelled: list[str] = []
    original_convert = converter.convert

    async def tracking_convert(chunk: str, voice: str) -> Optional[str]:
        try:
            return await original_convert(chunk, voice)
        except asyncio.CancelledError:
            cancelled.append(chunk)
            raise

    converter.convert = tracking_convert  # type: ignore[method-assign]
    dispatcher = ChunkDispatcher(converter, max_chunk_length=6, chunk_delay=0)

    consumer = asyncio.create_task(_collect(dispatcher, " ".join(sentences)))
    await asyncio.sleep(0.01)
    consumer.cancel()
    with pytest.raises(asyncio.CancelledError):
        await consumer

    await asyncio.sleep(0.1)
    assert cancelled == []
    assert sorted(converter.finished) == sorted(sentences)


def test_sse_message_serializes_payload():
    message = sse_message(CompletionEvent(total_chunks=2))
    assert message == {"data": '{"type": "complete", "totalChunks": 2}'}
