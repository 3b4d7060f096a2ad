"""
Noir Relay Configuration Management

Centralized configuration using pydantic-settings with environment variable support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

GEMINI_LIVE_URL = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ══════════════════════════════════════════════════════════════
    # Application
    # ══════════════════════════════════════════════════════════════
    app_name: str = "Noir Relay"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    cors_origins: str = "*"
    static_dir: str = "public"

    # ══════════════════════════════════════════════════════════════
    # Access Gate
    # ══════════════════════════════════════════════════════════════
    app_password: str | None = None

    # ══════════════════════════════════════════════════════════════
    # Upstream (Gemini Live)
    # ══════════════════════════════════════════════════════════════
    gemini_api_key: str | None = None
    upstream_url: str = GEMINI_LIVE_URL
    upstream_open_timeout_seconds: float = Field(default=10.0, ge=0.0)  # 0 = no bound
    upstream_max_message_bytes: int = Field(default=16 * 1024 * 1024, gt=0)

    # ══════════════════════════════════════════════════════════════
    # Pending Frame Queue
    # ══════════════════════════════════════════════════════════════
    pending_queue_max_frames: int = Field(default=256, ge=0)  # 0 = unbounded
    pending_queue_overflow: Literal["close", "drop_oldest", "drop_newest"] = "close"

    @field_validator("app_password", "gemini_api_key", mode="before")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if isinstance(v, str) and v == "":
            return None
        return v

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def open_mode(self) -> bool:
        """True when no shared secret is configured and every client is accepted."""
        return self.app_password is None

    @property
    def upstream_open_timeout(self) -> float | None:
        """Handshake bound in seconds, or None when disabled."""
        return self.upstream_open_timeout_seconds or None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
