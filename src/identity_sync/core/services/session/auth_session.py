import secrets

from src.identity_sync.core.models.session import AuthSession
from src.identity_sync.core.security import sanitize_return_url
from src.identity_sync.core.storage.session_storage import SessionStorage
from src.identity_sync.runtime.context import get_config


class AuthSessionService:
    """Short-lived state for one login round-trip."""

    def __init__(self, session_storage: SessionStorage) -> None:
        self._storage = session_storage

    async def create_auth_session(
        self,
        pkce_verifier: str,
        state: str,
        nonce: str,
        return_to: str | None,
    ) -> AuthSession:
        """Create an auth session for the OIDC flow.

        Args:
            pkce_verifier: PKCE code verifier
            state: CSRF state parameter
            nonce: OIDC nonce parameter
            return_to: Post-auth redirect path (sanitized here)

        Returns:
            The stored auth session
        """
        ttl = get_config().session.auth_session_ttl_seconds
        auth_session = AuthSession.create(
            session_id=secrets.token_urlsafe(32),
            pkce_verifier=pkce_verifier,
            state=state,
            nonce=nonce,
            return_to=sanitize_return_url(return_to),
            ttl_seconds=ttl,
        )

        await self._storage.set(f"auth:{auth_session.id}", auth_session, ttl)
        return auth_session

    async def get_auth_session(self, session_id: str) -> AuthSession | None:
        auth_session = await self._storage.get(f"auth:{session_id}", AuthSession)

        if not auth_session:
            return None

        if auth_session.used or auth_session.is_expired():
            await self._storage.delete(f"auth:{session_id}")
            return None

        return auth_session

    async def validate_auth_session(
        self, session_id: str, state: str | None
    ) -> AuthSession | None:
        """Return the auth session when ``state`` matches, else None.

        A mismatched state burns the session.
        """
        if not state:
            return None

        auth_session = await self.get_auth_session(session_id)
        if not auth_session:
            return None

        if not secrets.compare_digest(state, auth_session.state):
            await self.delete_auth_session(session_id)
            return None

        return auth_session

    async def delete_auth_session(self, session_id: str) -> None:
        await self._storage.delete(f"auth:{session_id}")
