"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Perplexity chat completions
    perplexity_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("PERPLEXITY_API_KEY", "perplexity_api_key"),
    )
    perplexity_api_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.perplexity.ai/chat/completions"),
        validation_alias=AliasChoices("PERPLEXITY_API_URL", "perplexity_api_url"),
    )
    perplexity_timeout: float = Field(
        default=25.0,
        ge=1,
        validation_alias=AliasChoices("PERPLEXITY_TIMEOUT", "perplexity_timeout"),
    )
    perplexity_temperature: float = Field(
        default=0.1,
        ge=0,
        le=2,
        validation_alias=AliasChoices(
            "PERPLEXITY_TEMPERATURE", "perplexity_temperature"
        ),
    )
    perplexity_max_tokens: int = Field(
        default=4000,
        ge=1,
        validation_alias=AliasChoices("PERPLEXITY_MAX_TOKENS", "perplexity_max_tokens"),
    )
    perplexity_history_limit: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices(
            "PERPLEXITY_HISTORY_LIMIT", "perplexity_history_limit"
        ),
    )

    # Text-to-speech vendor
    tts_endpoint: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://ttsvibes.com/?/generate"),
        validation_alias=AliasChoices("TTS_ENDPOINT", "tts_endpoint"),
    )
    tts_origin: str = Field(
        default="https://ttsvibes.com",
        validation_alias=AliasChoices("TTS_ORIGIN", "tts_origin"),
    )
    tts_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
        ),
        validation_alias=AliasChoices("TTS_USER_AGENT", "tts_user_agent"),
    )
    tts_default_voice: str = Field(
        default="tt-en_us_001",
        validation_alias=AliasChoices("TTS_DEFAULT_VOICE", "tts_default_voice"),
    )
    tts_max_chunk_length: int = Field(
        default=300,
        ge=1,
        validation_alias=AliasChoices("TTS_MAX_CHUNK_LENGTH", "tts_max_chunk_length"),
    )
    tts_chunk_delay_ms: int = Field(
        default=50,
        ge=0,
        validation_alias=AliasChoices("TTS_CHUNK_DELAY_MS", "tts_chunk_delay_ms"),
    )
    tts_batch_delay_ms: int = Field(
        default=100,
        ge=0,
        validation_alias=AliasChoices("TTS_BATCH_DELAY_MS", "tts_batch_delay_ms"),
    )
    tts_request_timeout: float = Field(
        default=60.0,
        ge=1,
        validation_alias=AliasChoices("TTS_REQUEST_TIMEOUT", "tts_request_timeout"),
    )

    # Audio cache
    tts_cache_path: Path = Field(
        default_factory=lambda: Path("data/tts_cache.db"),
        validation_alias=AliasChoices("TTS_CACHE_PATH", "tts_cache_path"),
    )
    tts_cache_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("TTS_CACHE_ENABLED", "tts_cache_enabled"),
    )

    @property
    def tts_chunk_delay(self) -> float:
        return self.tts_chunk_delay_ms / 1000

    @property
    def tts_batch_delay(self) -> float:
        return self.tts_batch_delay_ms / 1000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
