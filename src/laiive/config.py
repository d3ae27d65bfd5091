"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

ModerationFallback = Literal["reject", "allow"]


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ai_gateway_api_key: SecretStr = Field(
        ...,
        validation_alias=AliasChoices(
            "AI_GATEWAY_API_KEY", "LOVABLE_API_KEY", "ai_gateway_api_key"
        ),
    )
    ai_gateway_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://ai.gateway.lovable.dev/v1"),
        validation_alias=AliasChoices("AI_GATEWAY_BASE_URL", "ai_gateway_base_url"),
    )
    chat_model: str = Field(
        default="google/gemini-2.5-flash",
        validation_alias=AliasChoices("CHAT_MODEL", "chat_model"),
    )
    moderation_model: str = Field(
        default="google/gemini-2.5-flash-lite",
        validation_alias=AliasChoices("MODERATION_MODEL", "moderation_model"),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("REQUEST_TIMEOUT", "request_timeout"),
        ge=1,
    )

    # Speech-to-text (OpenAI compatible)
    openai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"),
    )
    openai_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.openai.com/v1"),
        validation_alias=AliasChoices("OPENAI_BASE_URL", "openai_base_url"),
    )
    transcription_model: str = Field(
        default="whisper-1",
        validation_alias=AliasChoices("TRANSCRIPTION_MODEL", "transcription_model"),
    )

    # Internet search mode (optional)
    brave_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("BRAVE_API_KEY", "brave_api_key"),
    )

    database_path: Path = Field(
        default_factory=lambda: Path("data/laiive.db"),
        validation_alias=AliasChoices("DATABASE_PATH", "database_path"),
    )

    search_radius_km: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices("SEARCH_RADIUS_KM", "search_radius_km"),
    )

    # Fixed-window rate limits, requests per window per client IP
    rate_limit_window_seconds: float = Field(
        default=60.0,
        gt=0,
        validation_alias=AliasChoices(
            "RATE_LIMIT_WINDOW_SECONDS", "rate_limit_window_seconds"
        ),
    )
    rate_limit_max_keys: int = Field(
        default=10_000,
        ge=1,
        validation_alias=AliasChoices("RATE_LIMIT_MAX_KEYS", "rate_limit_max_keys"),
    )
    promoter_rate_limit: int = Field(
        default=30,
        ge=1,
        validation_alias=AliasChoices("PROMOTER_RATE_LIMIT", "promoter_rate_limit"),
    )
    extraction_rate_limit: int = Field(
        default=20,
        ge=1,
        validation_alias=AliasChoices(
            "EXTRACTION_RATE_LIMIT", "extraction_rate_limit"
        ),
    )
    transcription_rate_limit: int = Field(
        default=20,
        ge=1,
        validation_alias=AliasChoices(
            "TRANSCRIPTION_RATE_LIMIT", "transcription_rate_limit"
        ),
    )
    validation_rate_limit: int = Field(
        default=60,
        ge=1,
        validation_alias=AliasChoices(
            "VALIDATION_RATE_LIMIT", "validation_rate_limit"
        ),
    )

    # Input limits
    promoter_max_messages: int = Field(
        default=50,
        ge=1,
        validation_alias=AliasChoices(
            "PROMOTER_MAX_MESSAGES", "promoter_max_messages"
        ),
    )
    max_url_length: int = Field(
        default=2048,
        ge=1,
        validation_alias=AliasChoices("MAX_URL_LENGTH", "max_url_length"),
    )
    max_text_length: int = Field(
        default=10_000,
        ge=1,
        validation_alias=AliasChoices("MAX_TEXT_LENGTH", "max_text_length"),
    )
    max_image_base64_length: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices(
            "MAX_IMAGE_BASE64_LENGTH", "max_image_base64_length"
        ),
    )
    max_audio_base64_length: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices(
            "MAX_AUDIO_BASE64_LENGTH", "max_audio_base64_length"
        ),
    )
    page_text_limit: int = Field(
        default=8000,
        ge=1,
        validation_alias=AliasChoices("PAGE_TEXT_LIMIT", "page_text_limit"),
    )

    # What to do when the moderation model cannot be reached
    conversation_moderation_fallback: ModerationFallback = Field(
        default="reject",
        validation_alias=AliasChoices(
            "CONVERSATION_MODERATION_FALLBACK", "conversation_moderation_fallback"
        ),
    )
    event_moderation_fallback: ModerationFallback = Field(
        default="reject",
        validation_alias=AliasChoices(
            "EVENT_MODERATION_FALLBACK", "event_moderation_fallback"
        ),
    )

    legacy_event_sentinel: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "LEGACY_EVENT_SENTINEL", "legacy_event_sentinel"
        ),
    )

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS", "cors_allow_origins"),
    )
    app_url: Optional[AnyHttpUrl] = Field(
        default=None,
        validation_alias=AliasChoices("APP_URL", "HTTP_REFERER", "app_url"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["ModerationFallback", "Settings", "get_settings"]
