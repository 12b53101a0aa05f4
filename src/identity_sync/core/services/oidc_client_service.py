"""OIDC client for the authorization code flow with PKCE."""

import time
from typing import Any
from urllib.parse import urlencode

import httpx
from loguru import logger
from pydantic import BaseModel

from src.identity_sync.core.services.jwt.jwks import JwksService
from src.identity_sync.core.services.jwt.jwt_verify import IdTokenError, IdTokenVerifier
from src.identity_sync.runtime.config.config_data import IdentityProviderConfig


class OidcError(RuntimeError):
    """The provider refused a request or returned something unusable."""


class TokenResponse(BaseModel):
    """OIDC token response model."""

    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None

    @property
    def expires_at(self) -> int | None:
        if self.expires_in is None:
            return None
        return int(time.time()) + self.expires_in


class OidcClientService:
    """Talks to the identity provider on behalf of the web app."""

    def __init__(
        self,
        provider: IdentityProviderConfig,
        redirect_uri: str,
        transport: httpx.AsyncBaseTransport | None = None,
        id_token_verifier: IdTokenVerifier | None = None,
    ):
        self._provider = provider
        self._redirect_uri = redirect_uri
        self._transport = transport
        self._id_token_verifier = id_token_verifier or IdTokenVerifier(
            provider, JwksService(transport=transport)
        )

    @property
    def audience(self) -> str | None:
        return self._provider.audience

    def build_authorization_url(
        self, state: str, nonce: str, code_challenge: str
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": self._provider.client_id,
            "redirect_uri": self._redirect_uri,
            "scope": " ".join(self._provider.scopes),
            "state": state,
            "nonce": nonce,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        # Without an audience the provider issues no API credential
        if self._provider.audience:
            params["audience"] = self._provider.audience
        return f"{self._provider.authorization_endpoint}?{urlencode(params)}"

    def build_logout_url(self, return_to: str) -> str:
        params = {"client_id": self._provider.client_id, "returnTo": return_to}
        return f"{self._provider.end_session_endpoint}?{urlencode(params)}"

    async def exchange_code_for_tokens(
        self, code: str, pkce_verifier: str
    ) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Raises:
            OidcError: The token endpoint rejected the exchange
        """
        token_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._redirect_uri,
            "client_id": self._provider.client_id,
            "code_verifier": pkce_verifier,
        }
        if self._provider.client_secret:
            token_data["client_secret"] = self._provider.client_secret

        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            try:
                response = await client.post(
                    self._provider.token_endpoint,
                    data=token_data,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                return TokenResponse(**response.json())
            except (httpx.HTTPError, ValueError) as e:
                raise OidcError(f"Token exchange failed: {e}") from e

    async def claims_from_id_token(self, id_token: str, nonce: str) -> dict[str, Any]:
        """Verified identity claims from the ID token.

        Raises:
            OidcError: The token failed verification
        """
        try:
            return await self._id_token_verifier.verify(id_token, nonce)
        except IdTokenError as e:
            logger.bind(reason=str(e)).warning("ID token verification failed")
            raise OidcError(str(e)) from e

    async def fetch_userinfo(self, access_token: str) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"}
        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            try:
                response = await client.get(
                    self._provider.userinfo_endpoint, headers=headers
                )
                response.raise_for_status()
                claims = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise OidcError(f"Userinfo request failed: {e}") from e
        if not isinstance(claims, dict):
            raise OidcError("Userinfo response is not a JSON object")
        return claims

    async def get_user_claims(self, tokens: TokenResponse, nonce: str) -> dict[str, Any]:
        """Identity claims from the verified ID token.

        The userinfo endpoint is used only when no ID token was issued. A
        token that fails verification fails the login.
        """
        if tokens.id_token:
            return await self.claims_from_id_token(tokens.id_token, nonce)

        if tokens.access_token:
            return await self.fetch_userinfo(tokens.access_token)

        raise OidcError("Unable to retrieve user claims - no ID token or access token")
