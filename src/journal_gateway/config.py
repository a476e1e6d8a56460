"""Journal gateway — application configuration."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class BreakerOverride(BaseModel):
    """Per-provider breaker/timeout overrides; unset fields fall back to the globals."""

    failure_threshold: int | None = Field(default=None, ge=1)
    window_seconds: float | None = Field(default=None, gt=0)
    cooldown_seconds: float | None = Field(default=None, gt=0)
    timeout_seconds: float | None = Field(default=None, gt=0)


class Settings(BaseSettings):
    """Centralised, validated configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "journal-gateway"
    app_env: Environment = Environment.DEVELOPMENT
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    json_logs: bool = False
    admin_token: str = ""
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    # ── AI proxy ─────────────────────────────────────────────
    ai_proxy_base_url: str = "http://localhost:3001/api"
    ai_proxy_api_key: str = ""

    # ── Circuit breaker ──────────────────────────────────────
    breaker_failure_threshold: int = Field(default=3, ge=1)
    breaker_window_seconds: float = Field(default=120.0, gt=0)
    breaker_cooldown_seconds: float = Field(default=60.0, gt=0)
    breaker_backoff_multiplier: float = Field(default=1.0, ge=1.0)
    breaker_max_cooldown_seconds: float = Field(default=600.0, gt=0)

    # Per-provider overrides, e.g. PROVIDER_OVERRIDES='{"vision": {"cooldown_seconds": 30}}'
    provider_overrides: dict[str, BreakerOverride] = Field(default_factory=dict)

    # ── Per-provider deadlines ───────────────────────────────
    text_timeout_seconds: float = Field(default=60.0, gt=0)
    audio_timeout_seconds: float = Field(default=60.0, gt=0)
    vision_timeout_seconds: float = Field(default=90.0, gt=0)
    image_timeout_seconds: float = Field(default=120.0, gt=0)
    live_connect_timeout_seconds: float = Field(default=15.0, gt=0)

    # ── Observability ────────────────────────────────────────
    prometheus_enabled: bool = True

    # ── Derived helpers ──────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.app_env == Environment.PRODUCTION

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("provider_overrides")
    @classmethod
    def _known_providers(cls, v: dict[str, BreakerOverride]) -> dict[str, BreakerOverride]:
        known = {"text", "audio", "vision", "image", "live"}
        unknown = set(v) - known
        if unknown:
            raise ValueError(f"provider_overrides has unknown providers: {sorted(unknown)}")
        return v

    @model_validator(mode="after")
    def _check_cooldown_bounds(self) -> Settings:
        if self.breaker_max_cooldown_seconds < self.breaker_cooldown_seconds:
            raise ValueError(
                "breaker_max_cooldown_seconds must be >= breaker_cooldown_seconds"
            )
        for name, override in self.provider_overrides.items():
            if (
                override.cooldown_seconds is not None
                and override.cooldown_seconds > self.breaker_max_cooldown_seconds
            ):
                raise ValueError(
                    f"{name}: cooldown_seconds exceeds breaker_max_cooldown_seconds"
                )
        return self

    @model_validator(mode="after")
    def _guard_production_admin(self) -> Settings:
        """Admin reset must be protected in production."""
        if self.app_env == Environment.PRODUCTION and not self.admin_token:
            raise ValueError("admin_token must be set in production")
        return self


def get_settings(**overrides: Any) -> Settings:
    """Factory that allows test-time overrides."""
    return Settings(**overrides)
