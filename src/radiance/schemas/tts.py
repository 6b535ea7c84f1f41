"""Pydantic models for text-to-speech requests."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class TTSRequest(BaseModel):
    """Body of the batch and streaming TTS routes.

    ``text`` is typed loosely so the route can answer malformed input with
    its own 400 payload instead of a validation error.
    """

    text: Any = None
    voice: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    def validated_text(self) -> Optional[str]:
        if isinstance(self.text, str) and self.text:
            return self.text
        return None


class ClearCacheRequest(BaseModel):
    texts: Any = None
    voice: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    def validated_texts(self) -> Optional[list[str]]:
        if not isinstance(self.texts, list):
            return None
        return [str(text) for text in self.texts]


__all__ = ["ClearCacheRequest", "TTSRequest"]
