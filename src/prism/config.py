"""Configuration management for PRISM.

Loads API keys and settings from environment variables using Pydantic.
All secrets must be stored in .env (never hardcoded).

Usage:
    from prism.config import settings

    print(settings.gemini_flash_model)
    print(settings.log_level)
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """PRISM configuration from environment variables.

    Loads from .env file automatically. Validates on instantiation.
    The generative backend key is required; the document gateway key is
    optional (some gateways sit behind a private network).

    Attributes:
        gemini_api_key: Google Generative Language API key
        store_base_url: Base URL of the document-store query gateway
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR)
        max_hits: Maximum subjects returned by the entity resolver
        array_cap: Maximum items kept per list in the outgoing payload
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    # Generative backend (REQUIRED key)
    gemini_api_key: str = Field(..., min_length=10, description="Gemini API key")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1",
        description="Generative Language API base URL",
    )
    gemini_flash_model: str = Field(default="gemini-2.0-flash-lite", description="'flash' variant")
    gemini_pro_model: str = Field(default="gemini-2.5-pro", description="'pro' variant")
    llm_timeout: float = Field(default=60.0, gt=0, description="Backend HTTP timeout (seconds)")
    llm_max_retries: int = Field(default=0, ge=0, le=5, description="Backend retries on transient errors")
    llm_rate_limit: int = Field(default=5, ge=1, description="Backend requests/second")

    # Document store gateway
    store_base_url: str = Field(default="http://localhost:8080", description="Document gateway URL")
    store_api_key: str | None = Field(default=None, description="Document gateway bearer token")
    store_timeout: float = Field(default=30.0, gt=0, description="Gateway HTTP timeout (seconds)")
    store_max_retries: int = Field(default=0, ge=0, le=5, description="Gateway retries on transient errors")
    store_rate_limit: int = Field(default=20, ge=1, description="Gateway requests/second")

    # System Settings
    log_level: str = Field(default="INFO", description="Logging level")

    # Pipeline bounds
    max_hits: int = Field(default=10, ge=1, le=100, description="Max resolved subjects per question")
    array_cap: int = Field(default=40, ge=1, le=500, description="Max items per list in payload")
    max_payload_chars: int = Field(
        default=60_000,
        ge=1_000,
        description="Approximate JSON size budget for data sent to the backend",
    )
    default_top_k: int = Field(default=5, ge=1, le=50, description="Default leaderboard/pool size")
    visual_mode_default: bool = Field(default=False, description="Visual mode when request omits it")
    auth_cookie_name: str | None = Field(
        default=None,
        description="Require this session cookie on /api/ask (None = gate handled upstream)",
    )

    # Schema snapshot (optional; prompts omit the data dictionary if absent)
    schema_path: str | None = Field(default=None, description="Path to the schema snapshot JSON")
    schema_ttl_seconds: int | None = Field(
        default=3600,
        ge=1,
        description="Reload the schema snapshot after this many seconds (None = never)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v_upper

    @field_validator("gemini_base_url", "store_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base URL must start with http:// or https://, got '{v}'")
        return v.rstrip("/")


# Global settings instance, loaded once at import
settings = Settings()
