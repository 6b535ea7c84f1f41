"""Value types shared by the chunked TTS pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union


@dataclass(frozen=True)
class TextChunk:
    """A sentence-aligned slice of the input text."""

    index: int
    text: str


@dataclass(frozen=True)
class ChunkResult:
    """Outcome of converting a single chunk."""

    index: int
    source_text: str
    audio_payload: Optional[str]
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return bool(self.audio_payload)


@dataclass(frozen=True)
class MetadataEvent:
    chunks: Sequence[TextChunk]

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "metadata",
            "totalChunks": self.total_chunks,
            "textChunks": [chunk.text for chunk in self.chunks],
        }


@dataclass(frozen=True)
class ChunkEvent:
    result: ChunkResult

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": "chunk",
            "index": self.result.index,
            "text": self.result.source_text,
            "audioData": self.result.audio_payload,
            "success": self.result.succeeded,
        }
        if self.result.error_message is not None:
            payload["error"] = self.result.error_message
        return payload


@dataclass(frozen=True)
class CompletionEvent:
    total_chunks: int

    def to_payload(self) -> dict[str, Any]:
        return {"type": "complete", "totalChunks": self.total_chunks}


@dataclass(frozen=True)
class ErrorEvent:
    message: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": "error", "error": self.message}


StreamEvent = Union[MetadataEvent, ChunkEvent, CompletionEvent, ErrorEvent]


__all__ = [
    "ChunkEvent",
    "ChunkResult",
    "CompletionEvent",
    "ErrorEvent",
    "MetadataEvent",
    "StreamEvent",
    "TextChunk",
]
