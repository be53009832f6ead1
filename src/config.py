"""Service configuration — environment-driven settings.

Security contract:
- Provider secrets are read from the environment (or .env) only, never logged
- Missing required configuration is a startup failure (ConfigError), never a
  request-time failure
"""

from __future__ import annotations

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DIDIT_BASE_URL = "https://verification.didit.me"


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """Environment-driven settings for the reconciliation service."""

    # Payment provider (Stripe)
    stripe_secret_key: str = Field(min_length=1)
    stripe_webhook_secret: str = Field(min_length=1)
    stripe_platform_fee_percent: float = Field(ge=0, le=100)
    stripe_success_url: str = Field(min_length=1)
    stripe_cancel_url: str = Field(min_length=1)

    # Identity provider (Didit)
    didit_api_key: str = Field(min_length=1)
    didit_workflow_id: str = Field(min_length=1)
    didit_webhook_secret: str = Field(min_length=1)
    didit_api_base_url: str = DEFAULT_DIDIT_BASE_URL
    didit_callback_base_url: str = ""

    # Messaging provider (Stream)
    stream_api_key: str = Field(min_length=1)
    stream_api_secret: str = Field(min_length=1)

    # Service
    app_url: str = ""
    jwt_secret: str = Field(min_length=1)
    database_url: str = ""
    redis_url: str = ""
    rate_limit: str = "50/minute"
    provider_timeout_seconds: float = 5.0
    webhook_max_skew_seconds: int = 300
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def _resolve_callback_base(self) -> Settings:
        self.didit_api_base_url = (self.didit_api_base_url.strip() or DEFAULT_DIDIT_BASE_URL).rstrip("/")
        if not self.didit_callback_base_url.strip():
            self.didit_callback_base_url = self.app_url.strip()
        if not self.didit_callback_base_url:
            raise ValueError("DIDIT_CALLBACK_BASE_URL or APP_URL is required")
        self.didit_callback_base_url = self.didit_callback_base_url.rstrip("/")
        return self


def load_settings(**overrides) -> Settings:
    """Load settings from the environment, failing fast on bad configuration."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = sorted(
            ".".join(str(p) for p in err["loc"]).upper() or err["msg"]
            for err in e.errors()
        )
        raise ConfigError(f"invalid configuration: {', '.join(fields)}") from e
