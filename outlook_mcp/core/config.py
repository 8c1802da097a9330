"""
Application configuration models and helpers.

Centralizes settings management so the MCP tool layer, the token services and
the companion authorization server share one configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import os

from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file into the environment."""
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


DEFAULT_SCOPES: tuple[str, ...] = (
    "openid",
    "profile",
    "offline_access",
    "User.Read",
    "Mail.Read",
    "Mail.ReadWrite",
    "Mail.Send",
    "MailboxSettings.Read",
    "Calendars.ReadWrite",
    "Contacts.Read",
)


class MicrosoftSettings(BaseSettings):
    """Configuration required for talking to the Microsoft identity platform."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    client_id: str = Field(..., validation_alias=AliasChoices("MS_CLIENT_ID", "client_id"))
    client_secret: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("MS_CLIENT_SECRET", "client_secret"),
        description="Only set for confidential clients; public clients omit it.",
    )
    authority: str = Field(
        "https://login.microsoftonline.com/common",
        validation_alias=AliasChoices("MS_AUTHORITY", "authority"),
    )
    redirect_uri: AnyHttpUrl = Field(
        "http://localhost:3333/auth/callback",
        validate_default=True,
        validation_alias=AliasChoices("MS_REDIRECT_URI", "redirect_uri"),
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        DEFAULT_SCOPES,
        validation_alias=AliasChoices("MS_SCOPES", "scopes"),
    )

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

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority.rstrip('/')}/oauth2/v2.0/token"

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.authority.rstrip('/')}/oauth2/v2.0/authorize"


class StorageSettings(BaseSettings):
    """Location of the shared token storage file."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    token_storage_path: Path = Field(
        Path.home() / ".enhanced-outlook-mcp-tokens.json",
        validation_alias=AliasChoices("TOKEN_STORAGE_PATH", "token_storage_path"),
    )

    @field_validator("token_storage_path", mode="after")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()


class AuthServerSettings(BaseSettings):
    """Where the companion authorization server listens and how long to wait on it."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    base_url: str = Field(
        "http://localhost:3333",
        validation_alias=AliasChoices("AUTH_SERVER_URL", "base_url"),
    )
    request_timeout_seconds: float = Field(
        15.0,
        ge=1.0,
        le=60.0,
        validation_alias=AliasChoices("AUTH_HTTP_TIMEOUT", "request_timeout_seconds"),
        description="Applied to every outbound call made by the token services.",
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("TOKEN_ENCRYPTION_SECRET", "token_encryption_secret"),
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens. "
            "Tokens are stored in plaintext when omitted."
        ),
    )


class SessionSettings(BaseSettings):
    """Multi-user session registry behaviour."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    idle_ttl_seconds: Optional[int] = Field(
        None,
        gt=0,
        validation_alias=AliasChoices("SESSION_IDLE_TTL", "idle_ttl_seconds"),
        description="Sessions idle for longer are pruned. Unset keeps them for the process lifetime.",
    )


class AppSettings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field(
        "development", validation_alias=AliasChoices("APP_ENV", "environment")
    )
    log_level: str = Field("INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    log_file: Optional[Path] = Field(
        None,
        validation_alias=AliasChoices("LOG_FILE", "log_file"),
        description="Optional file receiving a copy of every log record.",
    )
    microsoft: MicrosoftSettings = Field(default_factory=MicrosoftSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    auth_server: AuthServerSettings = Field(default_factory=AuthServerSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    sessions: SessionSettings = Field(default_factory=SessionSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "AuthServerSettings",
    "DEFAULT_SCOPES",
    "MicrosoftSettings",
    "SecuritySettings",
    "SessionSettings",
    "StorageSettings",
    "get_settings",
]
