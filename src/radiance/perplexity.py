"""Perplexity chat-completion client utilities."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Iterable, Optional

import httpx
from fastapi import status

from .config import Settings
from .schemas.perplexity import PromptVariant

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


class PerplexityError(Exception):
    """Wrap transport, timeout or API failures when calling Perplexity."""

    def __init__(self, status_code: int, message: str, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details

    def to_content(self) -> dict[str, Any]:
        content: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            content["details"] = self.details
        return content


@dataclass
class ServerSentEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    event: str = "message"
    event_id: Optional[str] = None


class PerplexityClient:
    """Forward chat completions to Perplexity, streaming or not."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[str, httpx.AsyncClient] = {}

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def _url(self) -> str:
        return str(self._settings.perplexity_api_url)

    @property
    def _timeout(self) -> float:
        return float(self._settings.perplexity_timeout)

    async def _get_http_client(self) -> httpx.AsyncClient:
        client = self.__class__._client_pool.get(self._url)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(self._url)
            if client is None:
                # Deadline comes from _race(); open streams read unbounded.
                timeout = httpx.Timeout(None, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(timeout=timeout, limits=limits, http2=True)
                self.__class__._client_pool[self._url] = client
        return client

    def _headers(self, *, streaming: bool) -> dict[str, str]:
        api_key = self._settings.perplexity_api_key
        if api_key is None or not api_key.get_secret_value():
            raise PerplexityError(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Perplexity API key is not configured",
            )
        return {
            "Authorization": f"Bearer {api_key.get_secret_value()}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if streaming else "application/json",
        }

    def build_payload(
        self, model: str, prompt: PromptVariant, *, stream: bool
    ) -> dict[str, Any]:
        return {
            "model": model,
            "messages": prompt.messages(),
            "temperature": self._settings.perplexity_temperature,
            "max_tokens": self._settings.perplexity_max_tokens,
            "stream": stream,
        }

    async def _race(self, awaitable: Any) -> httpx.Response:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Perplexity request timed out after %gs", self._timeout)
            raise PerplexityError(
                status.HTTP_504_GATEWAY_TIMEOUT,
                f"Perplexity request timed out after {self._timeout:g}s",
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Perplexity transport error: %s", exc)
            raise PerplexityError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def complete(self, model: str, prompt: PromptVariant) -> dict[str, Any]:
        """Return the upstream JSON body for a non-streaming completion."""

        headers = self._headers(streaming=False)
        payload = self.build_payload(model, prompt, stream=False)
        logger.info("Perplexity request: model=%s shape=%s", model, prompt.kind)

        client = await self._get_http_client()
        response = await self._race(client.post(self._url, headers=headers, json=payload))

        if response.status_code >= 400:
            raise self._status_error(response.status_code, response.content)

        try:
            return response.json()
        except ValueError as exc:
            raise PerplexityError(
                status.HTTP_502_BAD_GATEWAY,
                f"Perplexity returned invalid JSON: {exc}",
            ) from exc

    async def open_stream(self, model: str, prompt: PromptVariant) -> httpx.Response:
        """Send a streaming request and return the response once headers arrive.

        Status and timeout failures are raised here, before any event is sent
        to the caller.
        """

        headers = self._headers(streaming=True)
        payload = self.build_payload(model, prompt, stream=True)
        logger.info("Perplexity stream: model=%s shape=%s", model, prompt.kind)

        client = await self._get_http_client()
        request = client.build_request("POST", self._url, headers=headers, json=payload)
        response = await self._race(client.send(request, stream=True))

        if response.status_code >= 400:
            try:
                body = await response.aread()
            finally:
                await response.aclose()
            raise self._status_error(response.status_code, body)
        return response

    async def iter_stream(
        self, response: httpx.Response
    ) -> AsyncGenerator[dict[str, str], None]:
        """Re-emit upstream events as ``{"data": ...}`` messages ending in [DONE]."""

        try:
            async for event in iter_sse_events(response):
                if not event.data:
                    continue
                yield {"data": event.data}
                if event.data == DONE_MARKER:
                    return
            yield {"data": DONE_MARKER}
        except httpx.HTTPError as exc:
            raise PerplexityError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        finally:
            await response.aclose()

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

    @staticmethod
    def _status_error(status_code: int, raw: bytes) -> PerplexityError:
        text = raw.decode("utf-8", errors="ignore") if raw else ""
        logger.error("Perplexity API error: %d - %s", status_code, text)
        return PerplexityError(
            status_code, f"Perplexity API error: {status_code}", details=text
        )


async def iter_sse_events(
    response: httpx.Response,
) -> AsyncGenerator[ServerSentEvent, None]:
    buffer: list[str] = []
    async for line in response.aiter_lines():
        if not line:
            if buffer:
                yield parse_sse_event(buffer)
                buffer.clear()
            continue
        if line.startswith(":"):
            continue
        buffer.append(line)
    if buffer:
        yield parse_sse_event(buffer)


def parse_sse_event(lines: Iterable[str]) -> ServerSentEvent:
    event_name: Optional[str] = None
    event_id: Optional[str] = None
    data_lines: list[str] = []

    for line in lines:
        field, _, value = line.partition(":")
        value = value.lstrip(" ")
        if field == "event":
            event_name = value or None
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            event_id = value or None

    return ServerSentEvent(
        data="\n".join(data_lines), event=event_name or "message", event_id=event_id
    )


def error_delta(message: str) -> str:
    """Return a delta-shaped chunk so streaming clients render the error inline."""

    return json.dumps({"choices": [{"delta": {"content": f"Error: {message}"}}]})


__all__ = [
    "DONE_MARKER",
    "PerplexityClient",
    "PerplexityError",
    "ServerSentEvent",
    "error_delta",
    "iter_sse_events",
    "parse_sse_event",
]
