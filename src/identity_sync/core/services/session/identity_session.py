import secrets
import time
from typing import Any

from loguru import logger

from src.identity_sync.core.models.session import IdentitySession
from src.identity_sync.core.storage.session_storage import SessionStorage
from src.identity_sync.runtime.context import get_config


class IdentitySessionService:
    """Service for managing sessions of authenticated principals."""

    def __init__(self, session_storage: SessionStorage) -> None:
        self._storage = session_storage

    async def create_identity_session(
        self,
        claims: dict[str, Any],
        access_token: str | None = None,
        access_token_expires_at: int | None = None,
        id_token: str | None = None,
        refresh_token: str | None = None,
        audience: str | None = None,
    ) -> IdentitySession:
        """Create and store a session for a freshly authenticated principal.

        Args:
            claims: Identity claims (``sub`` required)
            access_token: API credential, only when an audience was requested
            access_token_expires_at: Expiry of the API credential
            id_token: Identity credential
            refresh_token: OAuth refresh token
            audience: Audience the API credential was requested for

        Returns:
            The stored session
        """
        if not claims.get("sub"):
            raise ValueError("Identity claims are missing the subject")

        max_age = get_config().session.max_age
        identity_session = IdentitySession.create(
            session_id=secrets.token_urlsafe(32),
            claims=claims,
            access_token=access_token,
            access_token_expires_at=access_token_expires_at,
            id_token=id_token,
            refresh_token=refresh_token,
            audience=audience,
            session_max_age=max_age,
        )

        await self._storage.set(
            f"identity:{identity_session.id}", identity_session, max_age
        )
        logger.bind(
            session_keys=identity_session.session_keys(),
        ).info("Identity session created")
        return identity_session

    async def get_identity_session(self, session_id: str) -> IdentitySession | None:
        """Get a session by id, refreshing its last-access time.

        Raises:
            SessionDecodeError: The stored session is corrupted
        """
        identity_session = await self._storage.get(
            f"identity:{session_id}", IdentitySession
        )

        if not identity_session:
            return None

        if identity_session.is_expired():
            await self.delete_identity_session(session_id)
            return None

        identity_session.update_access()
        ttl = max(1, identity_session.expires_at - int(time.time()))
        await self._storage.set(f"identity:{identity_session.id}", identity_session, ttl)
        return identity_session

    async def delete_identity_session(self, session_id: str) -> None:
        await self._storage.delete(f"identity:{session_id}")

    async def purge_expired(self) -> int:
        return await self._storage.cleanup_expired()
