"""Perplexity proxy API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from sse_starlette.sse import EventSourceResponse

from ..config import Settings, get_settings
from ..perplexity import DONE_MARKER, PerplexityClient, PerplexityError, error_delta
from ..schemas.perplexity import InvalidPromptError, PerplexityChatRequest

router = APIRouter(prefix="/api", tags=["perplexity"])

logger = logging.getLogger(__name__)

STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def get_perplexity_client(
    settings: Settings = Depends(get_settings),
) -> PerplexityClient:
    return PerplexityClient(settings)


@router.post("/perplexity", response_model=None)
async def perplexity_chat(
    payload: PerplexityChatRequest,
    client: PerplexityClient = Depends(get_perplexity_client),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Proxy a chat completion so the API key never reaches the browser."""

    try:
        prompt = payload.resolve(settings.perplexity_history_limit)
    except InvalidPromptError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    # resolve() has already rejected a missing model.
    model = payload.model or ""
    logger.info(
        "Perplexity proxy: model=%s streaming=%s shape=%s",
        model,
        payload.streaming,
        prompt.kind,
    )

    if not payload.streaming:
        try:
            body = await client.complete(model, prompt)
        except PerplexityError as exc:
            return JSONResponse(exc.to_content(), status_code=exc.status_code)
        return JSONResponse(body)

    try:
        upstream = await client.open_stream(model, prompt)
    except PerplexityError as exc:
        return JSONResponse(exc.to_content(), status_code=exc.status_code)

    async def event_publisher():
        try:
            async for message in client.iter_stream(upstream):
                yield message
        except PerplexityError as exc:
            logger.error("Perplexity stream failed: %s", exc.message)
            yield {"data": error_delta(exc.message)}
            yield {"data": DONE_MARKER}

    return EventSourceResponse(event_publisher(), headers=STREAM_HEADERS, sep="\n")


__all__ = ["get_perplexity_client", "router"]
