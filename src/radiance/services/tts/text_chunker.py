"""
Sentence-aligned text chunking for the TTS vendor.

The vendor rejects long inputs, so text is cut into bounded chunks before
conversion. Two strategies are provided:

- ``split_text_into_chunks`` feeds the streaming pipeline. Fragments are cut
  on sentence punctuation, normalized to end with a period and packed greedily.
  A sentence longer than the limit is kept whole as its own chunk.

- ``chunk_text_for_synthesis`` feeds the batch route. Original punctuation is
  preserved and oversized sentences are broken on word boundaries.

Usage:
    chunks = split_text_into_chunks(text, max_chunk_length=300)
    for chunk in chunks:
        print(chunk.index, chunk.text)
"""

from __future__ import annotations

import re
from typing import List

from .types import TextChunk

DEFAULT_MAX_CHUNK_LENGTH = 300

_SENTENCE_TERMINATORS = re.compile(r"[.!?]+")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE = re.compile(r"\s+")


def split_text_into_chunks(
    text: str, max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH
) -> List[TextChunk]:
    """
    Split text into ordered chunks of whole sentences.

    Each fragment between terminators is trimmed and given a trailing period.
    Fragments are appended to the current chunk (space separated) while the
    chunk length plus the fragment length stays within ``max_chunk_length``.

    If no fragment survives trimming the whole input is returned verbatim as
    a single chunk, so the result is never empty.

    Args:
        text: Input text to split
        max_chunk_length: Soft upper bound for a chunk's length

    Returns:
        Chunks indexed contiguously from zero
    """
    pieces: List[str] = []
    current = ""

    for fragment in _SENTENCE_TERMINATORS.split(text):
        trimmed = fragment.strip()
        if not trimmed:
            continue

        sentence = f"{trimmed}."
        if len(current) + len(sentence) <= max_chunk_length:
            current = f"{current} {sentence}" if current else sentence
        else:
            if current:
                pieces.append(current)
            current = sentence

    if current:
        pieces.append(current)

    if not pieces:
        pieces = [text]

    return [TextChunk(index=index, text=piece) for index, piece in enumerate(pieces)]


def chunk_text_for_synthesis(
    text: str, max_length: int = DEFAULT_MAX_CHUNK_LENGTH
) -> List[str]:
    """Split text for batch synthesis, breaking long sentences on words.

    Blank input yields an empty list.
    """
    chunks: List[str] = []
    current = ""

    def _seal() -> None:
        nonlocal current
        if current.strip():
            chunks.append(current.strip())
        current = ""

    for sentence in _SENTENCE_BOUNDARY.split(text):
        # The joining space is not counted against the limit.
        if len(current) + len(sentence) <= max_length:
            current = f"{current} {sentence}" if current else sentence
            continue

        _seal()
        if len(sentence) <= max_length:
            current = sentence
            continue

        for word in sentence.split(" "):
            if current and len(current) + 1 + len(word) > max_length:
                _seal()
            current = f"{current} {word}" if current else word

    _seal()
    return chunks


def count_words(chunk: str) -> int:
    """Return the number of whitespace separated words in ``chunk``."""

    return len([word for word in _WHITESPACE.split(chunk) if word])


__all__ = [
    "DEFAULT_MAX_CHUNK_LENGTH",
    "chunk_text_for_synthesis",
    "count_words",
    "split_text_into_chunks",
]
