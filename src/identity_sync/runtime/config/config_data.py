"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator


def _normalize_base(url: str) -> str:
    url = url.strip().rstrip("/")
    if url and "://" not in url:
        url = f"https://{url}"
    return url


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(default=["*"])


class RedisConfig(BaseModel):
    """Redis configuration model."""

    enabled: bool = Field(default=False, description="Enable Redis session storage")
    url: str = Field(default="", description="Redis connection URL")
    password: str | None = Field(
        default=None, description="Password for Redis authentication"
    )
    decode_responses: bool = Field(
        default=True, description="Decode Redis responses to strings"
    )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the Redis connection string with password if provided."""
        if self.password:
            if "@" in self.url:
                # URL already has auth info
                return self.url
            parts = self.url.split("://", 1)
            if len(parts) == 2:
                scheme, rest = parts
                return f"{scheme}://:{self.password}@{rest}"
        return self.url


class IdentityProviderConfig(BaseModel):
    """Identity provider (OIDC) configuration.

    Endpoints are derived from ``domain`` unless overridden explicitly.
    ``audience`` is the API identifier requested at login; without it the
    provider issues no API credential for the resource server.
    """

    domain: str = Field(default="", description="Identity provider domain")
    client_id: str = Field(default="", description="OAuth client identifier")
    client_secret: str = Field(default="", description="OAuth client secret")
    audience: str | None = Field(
        default=None, description="API audience to request an access credential for"
    )
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "profile", "email"],
        description="Scopes requested during authentication",
    )
    callback_path: str = Field(default="/auth/callback")
    post_logout_path: str = Field(default="/")

    authorization_endpoint_override: str | None = Field(default=None)
    token_endpoint_override: str | None = Field(default=None)
    userinfo_endpoint_override: str | None = Field(default=None)
    end_session_endpoint_override: str | None = Field(default=None)
    jwks_uri_override: str | None = Field(default=None)

    id_token_algorithms: list[str] = Field(
        default_factory=lambda: ["RS256"],
        description="Signature algorithms accepted on ID tokens",
    )
    clock_skew: int = Field(
        default=60, ge=0, description="Seconds of leeway for exp, nbf and iat"
    )

    @field_validator("audience", mode="before")
    @classmethod
    def _blank_audience_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def base_url(self) -> str:
        return _normalize_base(self.domain)

    @property
    def issuer(self) -> str:
        return f"{self.base_url}/"

    @property
    def authorization_endpoint(self) -> str:
        return self.authorization_endpoint_override or f"{self.base_url}/authorize"

    @property
    def token_endpoint(self) -> str:
        return self.token_endpoint_override or f"{self.base_url}/oauth/token"

    @property
    def userinfo_endpoint(self) -> str:
        return self.userinfo_endpoint_override or f"{self.base_url}/userinfo"

    @property
    def end_session_endpoint(self) -> str:
        return self.end_session_endpoint_override or f"{self.base_url}/v2/logout"

    @property
    def jwks_uri(self) -> str:
        return self.jwks_uri_override or f"{self.base_url}/.well-known/jwks.json"

    @property
    def is_configured(self) -> bool:
        return bool(self.domain and self.client_id)


class ResourceServerConfig(BaseModel):
    """Where the backend identity endpoint lives."""

    base_url: str = Field(
        default="http://localhost:8000", description="Resource server base URL"
    )
    identity_path: str = Field(default="/api/v1/auth/me")

    @property
    def identity_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.identity_path}"


class SessionConfig(BaseModel):
    """Session cookie and storage settings."""

    secret: str | None = Field(
        default=None, description="Secret used to sign the session cookie"
    )
    cookie_name: str = Field(default="app_session")
    max_age: int = Field(default=86400, description="Session maximum age in seconds")
    auth_session_ttl_seconds: int = Field(
        default=600, description="Login flow session TTL (10 minutes)"
    )
    cookie_samesite: Literal["lax", "strict", "none"] = Field(default="lax")


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str | None = Field(default=None, description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./identity_sync.db",
        description="Database connection URL",
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    name: str = Field(default="ResumeDB", description="Display name of the web app")
    base_url: str = Field(
        default="http://localhost:3000", description="Public base URL of the web app"
    )
    web_port: int = Field(default=3000)
    api_port: int = Field(default=8000)
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )

    @property
    def callback_base(self) -> str:
        return self.base_url.rstrip("/")


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
    identity_provider: IdentityProviderConfig = Field(
        default_factory=IdentityProviderConfig,
        description="Identity provider configuration",
    )
    resource_server: ResourceServerConfig = Field(
        default_factory=ResourceServerConfig,
        description="Resource server configuration",
    )
    session: SessionConfig = Field(
        default_factory=SessionConfig, description="Session configuration"
    )
    redis: RedisConfig = Field(
        default_factory=RedisConfig, description="Redis configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
