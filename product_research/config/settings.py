"""
Application settings and configuration management.

This module handles all environment variables, API keys, pipeline limits and
guard thresholds using Pydantic settings management for type safety and
validation. A ``Settings`` instance is the configuration provider passed into
every pipeline collaborator.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_EXCLUDE_DOMAINS = [
    "pinterest.com",
    "facebook.com",
    "instagram.com",
    "youtube.com",
    "reddit.com",
    "tiktok.com",
    "twitter.com",
    "x.com",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values are stored as SecretStr to prevent accidental logging.
    Settings are validated on load and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Keys
    tavily_api_key: Optional[SecretStr] = Field(default=None, alias="TAVILY_API_KEY")
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="ANTHROPIC_API_KEY")

    # Application Configuration
    app_env: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        alias="APP_ENV"
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Model Configuration
    claude_model: str = Field(
        default="claude-sonnet-4-20250514",
        alias="CLAUDE_MODEL"
    )
    claude_max_tokens: int = Field(default=4096, alias="CLAUDE_MAX_TOKENS")
    extraction_temperature: float = Field(default=0.1, alias="EXTRACTION_TEMPERATURE")
    extraction_max_retries: int = Field(default=3, ge=1, alias="EXTRACTION_MAX_RETRIES")

    # Search / Extract API
    tavily_base_url: str = Field(default="https://api.tavily.com", alias="TAVILY_BASE_URL")
    search_depth: Literal["basic", "advanced"] = Field(default="basic", alias="SEARCH_DEPTH")
    extract_depth: Literal["basic", "advanced"] = Field(default="advanced", alias="EXTRACT_DEPTH")
    max_search_results: int = Field(default=10, ge=1, le=20, alias="MAX_SEARCH_RESULTS")
    include_images: bool = Field(default=True, alias="INCLUDE_IMAGES")
    exclude_domains: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_DOMAINS),
        alias="EXCLUDE_DOMAINS",
    )
    search_timeout_seconds: float = Field(default=30.0, alias="SEARCH_TIMEOUT_SECONDS")
    extract_timeout_seconds: float = Field(default=120.0, alias="EXTRACT_TIMEOUT_SECONDS")

    # Retry Policy
    http_max_attempts: int = Field(default=3, ge=1, alias="HTTP_MAX_ATTEMPTS")
    retry_base_delay_seconds: float = Field(default=2.0, ge=0, alias="RETRY_BASE_DELAY_SECONDS")
    retry_max_delay_seconds: float = Field(default=60.0, ge=0, alias="RETRY_MAX_DELAY_SECONDS")

    # Pipeline Limits
    max_competitors: int = Field(default=5, ge=1, le=20, alias="MAX_COMPETITORS")
    token_budget: int = Field(default=4000, ge=100, alias="TOKEN_BUDGET")

    # Cache Settings
    cache_ttl_hours: int = Field(default=24, ge=1, alias="CACHE_TTL_HOURS")
    fx_cache_ttl_hours: int = Field(default=24, ge=1, alias="FX_CACHE_TTL_HOURS")

    # Currency
    fx_base_url: str = Field(default="https://api.frankfurter.app", alias="FX_BASE_URL")
    fx_timeout_seconds: float = Field(default=5.0, alias="FX_TIMEOUT_SECONDS")
    store_currency: str = Field(default="USD", alias="STORE_CURRENCY")

    # Guards
    cooldown_minutes: int = Field(default=5, ge=0, alias="COOLDOWN_MINUTES")
    daily_credit_budget: float = Field(default=0, ge=0, alias="DAILY_CREDIT_BUDGET")

    # Storage
    data_dir: Path = Field(default=Path("data"), alias="DATA_DIR")
    report_retention_days: int = Field(default=30, ge=1, alias="REPORT_RETENTION_DAYS")

    @field_validator("data_dir", mode="before")
    @classmethod
    def validate_directories(cls, v: str | Path) -> Path:
        """Ensure directories exist."""
        path = Path(v)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("anthropic_api_key", mode="before")
    @classmethod
    def validate_anthropic_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate Anthropic API key format when one is supplied."""
        if v is None or v == "":
            return None
        if isinstance(v, SecretStr):
            v = v.get_secret_value()
        if not v.startswith("sk-"):
            raise ValueError("Invalid Anthropic API key format")
        return v

    @field_validator("store_currency", mode="before")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Currency codes are compared upper-case."""
        return str(v).strip().upper()

    @property
    def reports_dir(self) -> Path:
        return self.data_dir / "reports"

    @property
    def cache_file(self) -> Path:
        return self.data_dir / "cache.json"

    @property
    def catalog_file(self) -> Path:
        return self.data_dir / "catalog.json"

    @property
    def bookmarks_file(self) -> Path:
        return self.data_dir / "bookmarks.json"

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_hours * 3600

    @property
    def fx_cache_ttl_seconds(self) -> int:
        return self.fx_cache_ttl_hours * 3600

    @property
    def content_char_budget(self) -> int:
        """Character budget derived from the token budget (~4 chars per token)."""
        return self.token_budget * 4


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
