# backend/admission/core/config.py
import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidConfiguration


class Settings(BaseSettings):
    """Process-wide settings for the admission layer."""

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        alias="RATE_LIMIT_REDIS_URL",
        description="Shared counter store (Redis-compatible)",
    )

    # Rate Limiting Configuration
    rate_limit_enabled: bool = Field(
        default=True,
        alias="RATE_LIMIT_ENABLED",
        description="Process-wide kill switch; when false every request is admitted",
    )
    rate_limit_tenant: Optional[str] = Field(
        default=None,
        alias="RATE_LIMIT_TENANT",
        description="Tenant served by a single-tenant deployment",
    )
    rate_limit_window_seconds: int = Field(
        default=60,
        alias="RATE_LIMIT_WINDOW_SECONDS",
        description="Window width used when a tenant's default policy is created",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()


class RateLimiterConfig(BaseModel):
    """Construction parameters for a single tenant's rate limiter."""

    model_config = ConfigDict(frozen=True)

    tenant_name: str
    window_size_seconds: int
    redis_url: Optional[str] = None

    @field_validator("tenant_name")
    @classmethod
    def _tenant_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("tenant name must not be empty")
        return value

    @field_validator("window_size_seconds")
    @classmethod
    def _window_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("window size must be a positive number of seconds")
        return value

    @classmethod
    def build(cls, **kwargs: Any) -> "RateLimiterConfig":
        """Validate construction parameters, raising InvalidConfiguration on failure."""
        missing = [
            name
            for name in ("tenant_name", "window_size_seconds")
            if kwargs.get(name) in (None, "")
        ]
        if missing:
            raise InvalidConfiguration(
                "Invalid configuration!", details={"missing": missing}
            )
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            raise InvalidConfiguration(
                "Invalid configuration!",
                details={"errors": [err["msg"] for err in exc.errors()]},
            ) from exc

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "RateLimiterConfig":
        source = source or settings
        return cls.build(
            tenant_name=source.rate_limit_tenant,
            window_size_seconds=source.rate_limit_window_seconds,
            redis_url=source.redis_url,
        )
