"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the session services and
the operational scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class DiscordSettings(BaseSettings):
    """Configuration required for interacting with the Discord API."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    client_id: str = Field(..., validation_alias="DISCORD_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="DISCORD_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="DISCORD_REDIRECT_URI")
    bot_token: Optional[str] = Field(
        None,
        validation_alias="DISCORD_BOT_TOKEN",
        description="Bot credential used for guild membership checks and joins.",
    )
    guild_id: Optional[str] = Field(
        None,
        validation_alias="DISCORD_GUILD_ID",
        description="Community guild every dashboard user is invited into.",
    )
    invite_channel_id: Optional[str] = Field(
        None,
        validation_alias="DISCORD_INVITE_CHANNEL_ID",
        description="Channel used to mint single-use invites.",
    )
    invite_url: Optional[str] = Field(
        None,
        validation_alias="DISCORD_INVITE_URL",
        description="Static invite used when a single-use invite cannot be created.",
    )

    @property
    def guild_integration_enabled(self) -> bool:
        return bool(self.guild_id and self.bot_token)


class DatastoreSettings(BaseSettings):
    """Settings for the PostgREST datastore backing users and sessions."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    url: Optional[str] = Field(None, validation_alias="SUPABASE_URL")
    service_key: Optional[str] = Field(
        None, validation_alias="SUPABASE_SERVICE_ROLE_KEY"
    )


class ProvisionerSettings(BaseSettings):
    """Settings for the bot provisioner service."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    url: Optional[str] = Field(
        "http://localhost:8000", validation_alias="PROVISIONER_URL"
    )
    api_key: Optional[str] = Field(None, validation_alias="PROVISIONER_API_KEY")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    session_secret: Optional[str] = Field(
        None,
        validation_alias="SESSION_SECRET",
        description="HMAC key used to digest opaque session tokens.",
    )
    token_encryption_key: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_KEY",
        description="256-bit key (64 hex chars or base64) for stored provider tokens.",
    )
    bot_token_encryption_key: Optional[str] = Field(
        None,
        validation_alias="BOT_TOKEN_ENCRYPTION_KEY",
        description="Fernet key shared with the provisioner for bot credentials.",
    )
    cookie_secure: bool = Field(False, validation_alias="COOKIE_SECURE")


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    handshake_ttl_seconds: int = Field(600, validation_alias="OAUTH_HANDSHAKE_TTL")
    session_fallback_ttl_seconds: int = Field(
        3600, validation_alias="SESSION_FALLBACK_TTL"
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("identify", "email", "guilds", "guilds.join"),
        validation_alias="OAUTH_SCOPES",
    )
    login_path: str = "/login"
    dashboard_path: str = "/dashboard"
    onboarding_path: str = "/checkout"
    join_path: str = "/join"

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class CacheSettings(BaseSettings):
    """TTLs for the upstream lookup caches."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    bot_identity_ttl_seconds: float = Field(
        300.0, validation_alias="BOT_IDENTITY_CACHE_TTL"
    )
    provisioner_ttl_seconds: float = Field(
        15.0, validation_alias="PROVISIONER_CACHE_TTL"
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        populate_by_name=True,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    app_url: str = Field(
        "http://localhost:8080",
        validation_alias="APP_URL",
        description="Front-end origin that OAuth redirects land on.",
    )
    http_timeout_seconds: float = Field(10.0, validation_alias="HTTP_TIMEOUT")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    datastore: DatastoreSettings = Field(default_factory=DatastoreSettings)
    provisioner: ProvisionerSettings = Field(default_factory=ProvisionerSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)

    @field_validator("app_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies for HTTPS deployments or when forced explicitly."""
        return self.app_url.startswith("https://") or self.security.cookie_secure


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "CacheSettings",
    "DatastoreSettings",
    "DiscordSettings",
    "OAuthSettings",
    "ProvisionerSettings",
    "SecuritySettings",
    "get_settings",
]
