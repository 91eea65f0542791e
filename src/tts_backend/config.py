"""Application configuration using environment variables."""

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas.costs import ProviderPrice, ProviderPricing
from .services.tts.cost_estimator import CostModelConstants

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Public URL under which generated audio files are reachable
    public_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("http://localhost:8000"),
        validation_alias=AliasChoices("PUBLIC_BASE_URL", "public_base_url"),
    )

    elevenlabs_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("ELEVENLABS_API_KEY", "elevenlabs_api_key"),
    )
    elevenlabs_model_id: str = Field(
        default="eleven_multilingual_v2",
        validation_alias=AliasChoices("ELEVENLABS_MODEL_ID", "elevenlabs_model_id"),
    )
    elevenlabs_default_voice: str = Field(
        default="pNInz6obpgDQGcFmaJgB",  # Adam
        validation_alias=AliasChoices(
            "ELEVENLABS_DEFAULT_VOICE", "elevenlabs_default_voice"
        ),
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"),
    )
    openai_tts_model: str = Field(
        default="tts-1",
        validation_alias=AliasChoices("OPENAI_TTS_MODEL", "openai_tts_model"),
    )
    openai_default_voice: str = Field(
        default="alloy",
        validation_alias=AliasChoices("OPENAI_DEFAULT_VOICE", "openai_default_voice"),
    )

    tts_database_path: Path = Field(
        default_factory=lambda: Path("data/tts.db"),
        validation_alias=AliasChoices("TTS_DATABASE_PATH", "tts_db"),
    )
    audio_storage_dir: Path = Field(
        default_factory=lambda: Path("data/audio"),
        validation_alias=AliasChoices("AUDIO_STORAGE_DIR", "audio_storage_dir"),
    )
    generation_log_dir: Path = Field(
        default_factory=lambda: Path("logs/generations"),
        validation_alias=AliasChoices("GENERATION_LOG_DIR", "generation_log_dir"),
    )
    tts_request_timeout: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("TTS_REQUEST_TIMEOUT", "tts_request_timeout"),
    )
    tts_cache_ttl_days: int = Field(
        default=180,
        ge=1,
        validation_alias=AliasChoices("TTS_CACHE_TTL_DAYS", "tts_cache_ttl_days"),
    )
    tts_max_concurrency: int = Field(
        default=4,
        ge=1,
        validation_alias=AliasChoices("TTS_MAX_CONCURRENCY", "tts_max_concurrency"),
    )

    # Per-client request limit on /api/tts
    tts_rate_limit_requests: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices("TTS_RATE_LIMIT_REQUESTS"),
    )
    tts_rate_limit_window_seconds: float = Field(
        default=60.0,
        gt=0,
        validation_alias=AliasChoices("TTS_RATE_LIMIT_WINDOW_SECONDS"),
    )

    # Hard cap on provider spend over the last 24 hours (None disables it)
    tts_daily_budget_usd: Optional[float] = Field(
        default=50.0,
        ge=0,
        validation_alias=AliasChoices("TTS_DAILY_BUDGET_USD", "tts_daily_budget_usd"),
    )

    elevenlabs_price_per_character: float = Field(
        default=0.00003,
        ge=0,
        validation_alias=AliasChoices("ELEVENLABS_PRICE_PER_CHARACTER"),
    )
    openai_price_per_character: float = Field(
        default=0.000015,
        ge=0,
        validation_alias=AliasChoices("OPENAI_PRICE_PER_CHARACTER"),
    )
    tts_batching_discount_factor: float = Field(
        default=0.2,
        ge=0,
        le=1,
        validation_alias=AliasChoices("TTS_BATCHING_DISCOUNT_FACTOR"),
    )
    tts_segment_overhead_ratio: float = Field(
        default=0.1,
        ge=0,
        validation_alias=AliasChoices("TTS_SEGMENT_OVERHEAD_RATIO"),
    )

    @property
    def audio_cache_ttl(self) -> timedelta:
        return timedelta(days=self.tts_cache_ttl_days)

    @property
    def pricing(self) -> ProviderPricing:
        return {
            "elevenlabs": ProviderPrice(
                price_per_character=self.elevenlabs_price_per_character,
                model_name=self.elevenlabs_model_id,
            ),
            "openai": ProviderPrice(
                price_per_character=self.openai_price_per_character,
                model_name=self.openai_tts_model,
            ),
        }

    @property
    def cost_constants(self) -> CostModelConstants:
        return CostModelConstants(
            batching_discount_factor=self.tts_batching_discount_factor,
            segment_overhead_ratio=self.tts_segment_overhead_ratio,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
