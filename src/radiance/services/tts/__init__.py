"""
TTS (Text-to-Speech) Services Package.

This package contains the chunked streaming TTS pipeline:

- text_chunker: Splits input text into sentence-aligned chunks
- converter: Sends one chunk to the TTS vendor and extracts the audio
- dispatcher: Converts all chunks concurrently, emits results in order

Architecture Overview:

    ┌─────────────┐     ┌──────────────┐     ┌──────────────────┐
    │ Request text│────▶│ text_chunker │────▶│ ChunkDispatcher  │
    └─────────────┘     └──────────────┘     └──────────────────┘
                                                │   │   │
                                    ┌───────────┘   │   └───────────┐
                                    ▼               ▼               ▼
                              ┌──────────┐    ┌──────────┐    ┌──────────┐
                              │ convert 0│    │ convert 1│    │ convert n│
                              └──────────┘    └──────────┘    └──────────┘
                                    │               │               │
                                    └──────▶ drained by index ◀─────┘
                                                    │
                                                    ▼
                                            ┌──────────────┐
                                            │  SSE stream  │
                                            └──────────────┘

All vendor calls start immediately; events leave in chunk order:
1. metadata with every chunk's text, so the client can lay out placeholders
2. one chunk event per chunk, successful or not
3. a completion event (or a single error event if orchestration fails)
"""

from .converter import TTSVibesClient
from .dispatcher import ChunkDispatcher
from .text_chunker import chunk_text_for_synthesis, split_text_into_chunks

__all__ = [
    "ChunkDispatcher",
    "TTSVibesClient",
    "chunk_text_for_synthesis",
    "split_text_into_chunks",
]
