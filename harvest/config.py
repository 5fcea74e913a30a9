"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_TRUSTED_DOMAINS: tuple[str, ...] = (
    "myanimelist.net",
    "anilist.co",
    "mangadex.org",
    "mangaupdates.com",
    "kitsu.io",
)

PLACEHOLDER_ENGINE_ID = "your-search-engine-id"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Manga Harvest", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")
    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./harvest.db", alias="DATABASE_URL"
    )
    images_path: str = Field(default="./storage/images", alias="IMAGES_PATH")

    openrouter_api_key: str | None = Field(
        default=None, alias="OPENROUTER_API_KEY"
    )
    openrouter_model: str = Field(
        default="google/gemini-2.5-flash-lite", alias="OPENROUTER_MODEL"
    )
    openrouter_api_url: HttpUrl = Field(
        default="https://openrouter.ai/api/v1", alias="OPENROUTER_API_URL"
    )

    google_search_api_key: str | None = Field(
        default=None, alias="GOOGLE_SEARCH_API_KEY"
    )
    google_search_engine_id: str | None = Field(
        default=None, alias="GOOGLE_SEARCH_ENGINE_ID"
    )
    google_search_api_url: HttpUrl = Field(
        default="https://www.googleapis.com/customsearch/v1",
        alias="GOOGLE_SEARCH_API_URL",
    )
    trusted_domains: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_TRUSTED_DOMAINS, alias="TRUSTED_DOMAINS"
    )
    search_qualifier: str = Field(
        default="manga myanimelist", alias="SEARCH_QUALIFIER"
    )

    fetch_timeout_seconds: float = Field(
        default=15.0, alias="FETCH_TIMEOUT", ge=5.0, le=60.0
    )
    asset_timeout_seconds: float = Field(
        default=30.0, alias="ASSET_TIMEOUT", ge=5.0, le=120.0
    )
    request_delay_seconds: float = Field(
        default=1.5, alias="REQUEST_DELAY", ge=0.0, le=60.0
    )
    page_delay_seconds: float = Field(
        default=2.0, alias="PAGE_DELAY", ge=0.0, le=60.0
    )
    discovery_max_pages: int = Field(
        default=100, alias="DISCOVERY_MAX_PAGES", ge=1, le=1_000
    )
    discovery_max_empty_pages: int = Field(
        default=3, alias="DISCOVERY_MAX_EMPTY_PAGES", ge=1, le=20
    )
    listing_url: HttpUrl = Field(
        default="https://lermangas.me/", alias="LISTING_URL"
    )
    smoke_test_limit: int = Field(default=5, alias="SMOKE_TEST_LIMIT", ge=1, le=50)

    translate_language: str = Field(
        default="Brazilian Portuguese", alias="TRANSLATE_LANGUAGE"
    )
    generic_excerpt_chars: int = Field(
        default=5_000, alias="GENERIC_EXCERPT_CHARS", ge=500, le=50_000
    )

    @field_validator("trusted_domains", mode="before")
    @classmethod
    def _parse_trusted_domains(cls, value: object) -> tuple[str, ...]:
        """Normalise the trusted domain allow-list from environment values."""

        if value is None:
            return DEFAULT_TRUSTED_DOMAINS
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("TRUSTED_DOMAINS must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            domain = entry.lower()
            for prefix in ("https://", "http://"):
                if domain.startswith(prefix):
                    domain = domain[len(prefix):]
            domain = domain.split("/", 1)[0]
            if domain.startswith("www."):
                domain = domain[4:]
            if domain and domain not in cleaned:
                cleaned.append(domain)
        if not cleaned:
            return DEFAULT_TRUSTED_DOMAINS
        return tuple(cleaned)

    @property
    def search_engine_configured(self) -> bool:
        """Return whether the curated search API can be called."""

        engine_id = (self.google_search_engine_id or "").strip()
        if not engine_id or engine_id == PLACEHOLDER_ENGINE_ID:
            return False
        return bool(self.google_search_api_key)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
