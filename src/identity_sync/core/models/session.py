"""Session models for the login flow and the authenticated identity."""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuthSession(BaseModel):
    """Temporary session for the OIDC authorization flow."""

    id: str = Field(description="Session identifier")
    pkce_verifier: str = Field(description="PKCE code verifier")
    state: str = Field(description="CSRF state parameter")
    nonce: str = Field(description="OIDC nonce for replay protection")
    return_to: str = Field(description="Sanitized post-auth redirect URL")
    created_at: int = Field(description="Creation timestamp")
    expires_at: int = Field(description="Expiration timestamp")
    used: bool = Field(default=False, description="Whether session has been used")

    @classmethod
    def create(
        cls,
        session_id: str,
        pkce_verifier: str,
        state: str,
        nonce: str,
        return_to: str,
        ttl_seconds: int = 600,
    ) -> "AuthSession":
        """Create a new auth session with timestamps."""
        now = int(time.time())
        return cls(
            id=session_id,
            pkce_verifier=pkce_verifier,
            state=state,
            nonce=nonce,
            return_to=return_to,
            created_at=now,
            expires_at=now + ttl_seconds,
        )

    def is_expired(self) -> bool:
        return time.time() > self.expires_at

    def mark_used(self) -> None:
        self.used = True


class IdentitySession(BaseModel):
    """Server-held session for an authenticated principal.

    Which fields are populated depends on how login was configured: the API
    credential exists only when an audience was requested, and provider
    specific fields land in the model extras. Consumers probe fields
    explicitly rather than assuming a shape.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(description="Session identifier")
    principal_id: str | None = Field(default=None, description="Provider subject")
    email: str | None = Field(default=None)
    display_name: str | None = Field(default=None)
    nickname: str | None = Field(default=None)
    picture_url: str | None = Field(default=None)

    access_token: str | None = Field(default=None, description="API credential")
    access_token_expires_at: int | None = Field(default=None)
    id_token: str | None = Field(default=None, description="Identity credential")
    refresh_token: str | None = Field(default=None)
    audience: str | None = Field(default=None, description="Audience requested at login")

    raw_claims: dict[str, Any] = Field(default_factory=dict)

    created_at: int = Field(description="Creation timestamp")
    last_accessed_at: int = Field(description="Last access timestamp")
    expires_at: int = Field(description="Session expiration timestamp")

    @classmethod
    def create(
        cls,
        session_id: str,
        claims: dict[str, Any],
        access_token: str | None = None,
        access_token_expires_at: int | None = None,
        id_token: str | None = None,
        refresh_token: str | None = None,
        audience: str | None = None,
        session_max_age: int = 86400,
    ) -> "IdentitySession":
        """Build a session from provider claims and the token response."""
        now = int(time.time())
        return cls(
            id=session_id,
            principal_id=claims.get("sub"),
            email=claims.get("email"),
            display_name=claims.get("name"),
            nickname=claims.get("nickname"),
            picture_url=claims.get("picture"),
            access_token=access_token,
            access_token_expires_at=access_token_expires_at,
            id_token=id_token,
            refresh_token=refresh_token,
            audience=audience,
            raw_claims=dict(claims),
            created_at=now,
            last_accessed_at=now,
            expires_at=now + session_max_age,
        )

    @property
    def is_authenticated(self) -> bool:
        return bool(self.principal_id)

    def is_expired(self) -> bool:
        return time.time() > self.expires_at

    def update_access(self) -> None:
        self.last_accessed_at = int(time.time())

    def profile(self) -> dict[str, Any]:
        """Principal attributes safe to hand to the browser."""
        return {
            "sub": self.principal_id,
            "email": self.email,
            "name": self.display_name,
            "nickname": self.nickname,
            "picture": self.picture_url,
        }

    def session_keys(self) -> list[str]:
        """Names of the populated top-level fields, for diagnostics."""
        data = self.model_dump(exclude_none=True)
        return sorted(key for key, value in data.items() if value not in ("", {}, []))
