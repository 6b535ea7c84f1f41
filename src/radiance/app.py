"""Application factory for the FastAPI service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .perplexity import PerplexityClient
from .routers.perplexity import router as perplexity_router
from .routers.tts import router as tts_router
from .services.tts import TTSVibesClient
from .services.tts_cache import TTSCacheRepository

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("radiance").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Vendor payloads are large base64 strings; keep httpx quiet unless debugging
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app() -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = get_settings()

    project_root = Path(__file__).resolve().parent.parent.parent

    def _resolve_under(base: Path, p: Path) -> Path:
        # Allow absolute paths as-is (useful for tests and external mounts).
        if p.is_absolute():
            return p.resolve()
        resolved = (base / p).resolve()
        if not resolved.is_relative_to(base):
            raise ValueError(f"Configured path {resolved} escapes project root {base}")
        return resolved

    tts_cache: TTSCacheRepository | None = None
    if settings.tts_cache_enabled:
        tts_cache = TTSCacheRepository(
            _resolve_under(project_root, settings.tts_cache_path)
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if tts_cache is not None:
            try:
                await tts_cache.initialize()
            except Exception as exc:
                logger.warning("TTS cache unavailable, continuing without it: %s", exc)
                app.state.tts_cache = None
        try:
            yield
        finally:
            if app.state.tts_cache is not None:
                await app.state.tts_cache.close()
            await TTSVibesClient.aclose_shared()
            await PerplexityClient.aclose_shared()

    app = FastAPI(
        title="Radiance Backend",
        version="0.1.0",
        description="Streaming text-to-speech and Perplexity proxy for Radiance.",
        lifespan=lifespan,
    )

    app.state.tts_cache = tts_cache

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(tts_router)
    app.include_router(perplexity_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | bool]:
        api_key = settings.perplexity_api_key
        return {
            "status": "ok",
            "ttsCache": app.state.tts_cache is not None,
            "perplexityConfigured": bool(api_key and api_key.get_secret_value()),
        }

    return app


__all__ = ["create_app"]
