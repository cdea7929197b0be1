from __future__ import annotations

from typing import Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.constants import DB_SCHEMA

# Load .env once at import so every settings group sees it.
load_dotenv()

DEV_JWT_SECRET = "anipilot-change-me-in-production"


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings. Env vars prefixed with DATABASE_."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "anipilot"
    schema_: str = Field(DB_SCHEMA, validation_alias="DATABASE_SCHEMA")

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, v: str) -> str:
        if v != DB_SCHEMA:
            msg = f"DATABASE_SCHEMA must be '{DB_SCHEMA}' (got '{v}')"
            raise ValueError(msg)
        return v


class GatewaySettings(BaseSettings):
    """HTTP gateway settings. Env vars prefixed with GATEWAY_."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "0.0.0.0"
    port: int = 3000
    # Upper bound for a single store round-trip (asyncpg command_timeout)
    request_timeout_s: float = Field(10.0, gt=0, le=60)
    cors_origins: str = "*"  # comma-separated


class AuthSettings(BaseSettings):
    """Agent credential and pairing settings. Env vars prefixed with AUTH_."""

    model_config = SettingsConfigDict(env_prefix="AUTH_")

    jwt_secret: str = DEV_JWT_SECRET
    token_ttl_days: int = Field(30, gt=0)
    cache_ttl_s: float = Field(60.0, gt=0)
    cache_sweep_interval_s: float = Field(120.0, gt=0)
    pairing_code_ttl_s: int = Field(300, gt=0)

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.cache_sweep_interval_s < self.cache_ttl_s:
            raise ValueError(
                f"cache_sweep_interval_s ({self.cache_sweep_interval_s}) must be >= "
                f"cache_ttl_s ({self.cache_ttl_s})"
            )
        return self


class TelegramSettings(BaseSettings):
    """Telegram bot settings. Env vars prefixed with TELEGRAM_."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")

    bot_token: str = ""  # empty = bot and notification sink disabled
    webapp_url: str = ""
    request_timeout_s: float = Field(10.0, gt=0, le=60)


class SyncSettings(BaseSettings):
    """Liveness, command queue and notification timing. Env vars prefixed with SYNC_."""

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    reachable_window_s: int = 120
    offline_after_s: int = 600
    sweep_interval_s: int = 60
    command_retention_s: int = 3600
    notification_retention_s: int = 86_400
    notify_cooldown_s: int = 300
    poll_limit: int = Field(10, gt=0, le=100)
    history_max_items: int = Field(50, gt=0)

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.reachable_window_s >= self.offline_after_s:
            raise ValueError(
                f"reachable_window_s ({self.reachable_window_s}) must be less than "
                f"offline_after_s ({self.offline_after_s})"
            )
        return self


class LoggingSettings(BaseSettings):
    """Log output settings. Env vars prefixed with LOG_."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = "INFO"
    json_output: bool = Field(True, validation_alias="LOG_JSON")

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        v = v.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v not in allowed:
            msg = f"LOG_LEVEL must be one of {allowed} (got '{v}')"
            raise ValueError(msg)
        return v


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
