"""HTTP client for the TTS vendor's form-encoded generate endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

import httpx

from ...config import Settings

logger = logging.getLogger(__name__)

_AUDIO_PAYLOAD_INDEX = 2


class TTSVibesClient:
    """Convert a single text chunk into a base64 audio payload.

    ``convert`` never raises: every failure (transport, status, envelope)
    is logged and reported as ``None``.
    """

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def _endpoint(self) -> str:
        return str(self._settings.tts_endpoint)

    def _client_key(self) -> tuple[str, float]:
        return (self._endpoint, float(self._settings.tts_request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.tts_request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(timeout=timeout, limits=limits)
                self.__class__._client_pool[key] = client
        return client

    @property
    def _headers(self) -> dict[str, str]:
        origin = self._settings.tts_origin.rstrip("/")
        return {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
            "Origin": origin,
            "Referer": f"{origin}/",
            "User-Agent": self._settings.tts_user_agent,
        }

    async def convert(self, chunk: str, voice: str) -> Optional[str]:
        """Return the audio payload for ``chunk`` or ``None`` on any failure."""

        form = {"selectedVoiceValue": voice, "text": chunk}
        try:
            client = await self._get_http_client()
            response = await client.post(
                self._endpoint, headers=self._headers, data=form
            )
        except httpx.HTTPError as exc:
            logger.warning("TTS request failed for %d chars: %s", len(chunk), exc)
            return None

        if not response.is_success:
            logger.warning(
                "TTS vendor returned HTTP %d for %d chars",
                response.status_code,
                len(chunk),
            )
            return None

        try:
            envelope = response.json()
        except ValueError as exc:
            logger.warning("TTS vendor returned non-JSON body: %s", exc)
            return None

        audio = extract_audio_payload(envelope)
        if audio is None:
            logger.warning("TTS vendor envelope carried no audio payload")
        return audio

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception:  # pragma: no cover - best effort cleanup
                pass


def extract_audio_payload(envelope: Any) -> Optional[str]:
    """Pull the audio string out of a ``{type: "success", data: ...}`` envelope.

    ``data`` is either a JSON-encoded array or an array already; the audio is
    its third element.
    """

    if not isinstance(envelope, dict):
        return None
    if envelope.get("type") != "success" or not envelope.get("data"):
        return None

    data = envelope["data"]
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError:
            return None

    if not isinstance(data, list) or len(data) <= _AUDIO_PAYLOAD_INDEX:
        return None

    audio = data[_AUDIO_PAYLOAD_INDEX]
    if isinstance(audio, str) and audio:
        return audio
    return None


__all__ = ["TTSVibesClient", "extract_audio_payload"]
