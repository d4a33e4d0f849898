"""
gcal-auth configuration management.

Supports loading from YAML files, environment variables, and keyword overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from gcal_auth.auth.errors import ConfigurationError

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

_PLACEHOLDER_VALUES = {"", "dummy-client-id", "dummy-client-secret"}
_TRUE_VALUES = ("1", "true", "yes")


class GoogleConfig(BaseModel):
    """Google OAuth client registration."""

    client_id: str = Field(default="", description="OAuth client ID")
    client_secret: str = Field(default="", description="OAuth client secret")
    redirect_uri: str | None = Field(
        default=None,
        description="Registered redirect URI (defaults to http://<auth.host>:<auth.port>/oauth2callback)",
    )
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES), min_length=1)

    @field_validator("redirect_uri")
    @classmethod
    def _check_redirect_uri(cls, value: str | None) -> str | None:
        if value is not None and "/oauth2callback" not in value:
            raise ValueError("Redirect URI must include the /oauth2callback endpoint")
        return value


class AuthConfig(BaseModel):
    """Local callback listener and token handling."""

    host: str = Field(default="localhost", min_length=1)
    port: int = Field(default=4153, ge=1, le=65535)
    use_manual_auth: bool = Field(
        default=False,
        description="Read the authorization code from stdin instead of a local listener",
    )
    token_encryption_key: str | None = Field(
        default=None,
        description="64 hex characters; generated per process when unset",
    )
    authorization_timeout: float = Field(default=300.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    identity: str = Field(default="default-user", min_length=1)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    sanitize: bool = Field(default=True, description="Redact secrets from log records")

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class GCalAuthConfig(BaseModel):
    """Root configuration for gcal-auth."""

    google: GoogleConfig = Field(default_factory=GoogleConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _default_redirect_uri(self) -> GCalAuthConfig:
        if self.google.redirect_uri is None:
            self.google.redirect_uri = f"http://{self.auth.host}:{self.auth.port}/oauth2callback"
        return self

    @property
    def redirect_uri(self) -> str:
        if self.google.redirect_uri is None:
            raise ConfigurationError("Redirect URI is not configured")
        return self.google.redirect_uri

    def validate_credentials(self) -> None:
        """Check that a real OAuth client is configured.

        Raises:
            ConfigurationError: If the client ID or secret is missing or a placeholder.
        """
        missing = []
        if self.google.client_id.strip() in _PLACEHOLDER_VALUES:
            missing.append("GOOGLE_CLIENT_ID")
        if self.google.client_secret.strip() in _PLACEHOLDER_VALUES:
            missing.append("GOOGLE_CLIENT_SECRET")
        if missing:
            raise ConfigurationError(f"Missing Google OAuth configuration: {', '.join(missing)}")

    @classmethod
    def load(cls, config_path: str | None = None, **overrides: Any) -> GCalAuthConfig:
        """Load configuration from file, env vars, and overrides.

        Priority: overrides > env vars > config file > defaults.
        """
        data: dict[str, Any] = {}

        # 1. Load from YAML file if provided
        if config_path:
            path = Path(config_path)
            if path.exists():
                with open(path) as f:
                    data = yaml.safe_load(f) or {}

        # 2. Override from environment variables
        google = data.get("google", {})
        for env_var, key in (
            ("GOOGLE_CLIENT_ID", "client_id"),
            ("GOOGLE_CLIENT_SECRET", "client_secret"),
            ("GOOGLE_REDIRECT_URI", "redirect_uri"),
        ):
            value = os.environ.get(env_var)
            if value:
                google[key] = value
        if google:
            data["google"] = google

        auth = data.get("auth", {})
        for env_var, key in (
            ("AUTH_HOST", "host"),
            ("AUTH_PORT", "port"),
            ("TOKEN_ENCRYPTION_KEY", "token_encryption_key"),
        ):
            value = os.environ.get(env_var)
            if value:
                auth[key] = value
        env_manual = os.environ.get("USE_MANUAL_AUTH")
        if env_manual:
            auth["use_manual_auth"] = env_manual.lower() in _TRUE_VALUES
        if auth:
            data["auth"] = auth

        logging_section = data.get("logging", {})
        env_level = os.environ.get("LOG_LEVEL")
        env_sanitize = os.environ.get("SANITIZE_LOGS")
        if env_level:
            logging_section["level"] = env_level
        if env_sanitize:
            logging_section["sanitize"] = env_sanitize.lower() in _TRUE_VALUES
        if logging_section:
            data["logging"] = logging_section

        # 3. Apply keyword overrides
        data.update(overrides)

        return cls.model_validate(data)
