"""Verification of ID tokens returned by the identity provider at login."""

from typing import Any

from authlib.jose import JoseError, JsonWebKey, JsonWebToken
from loguru import logger

from src.identity_sync.core.services.jwt.jwks import JwksError, JwksService
from src.identity_sync.runtime.config.config_data import IdentityProviderConfig


class IdTokenError(RuntimeError):
    """The ID token failed signature or claim verification."""


class IdTokenVerifier:
    """Checks an ID token's signature against the provider's JWKS.

    Registered claims are validated by authlib: ``iss`` must be the provider,
    ``aud`` must include the client id, ``exp`` must be present and in the
    future, and ``nonce`` must match the login attempt.
    """

    def __init__(self, provider: IdentityProviderConfig, jwks_service: JwksService):
        self._provider = provider
        self._jwks_service = jwks_service
        self._jwt = JsonWebToken(provider.id_token_algorithms)

    def _claims_options(self, nonce: str) -> dict[str, Any]:
        issuer = self._provider.issuer.rstrip("/")
        return {
            "iss": {"essential": True, "values": [issuer, f"{issuer}/"]},
            "aud": {"essential": True, "values": [self._provider.client_id]},
            "sub": {"essential": True},
            "exp": {"essential": True},
            "nonce": {"essential": True, "value": nonce},
        }

    async def _key_set(self, refresh: bool):
        try:
            jwks = await self._jwks_service.fetch_jwks(
                self._provider.jwks_uri, refresh=refresh
            )
            return JsonWebKey.import_key_set(jwks)
        except JwksError as e:
            raise IdTokenError(str(e)) from e
        except (JoseError, ValueError) as e:
            raise IdTokenError(f"Unusable JWKS: {e}") from e

    async def verify(self, id_token: str, nonce: str) -> dict[str, Any]:
        """Verified claims of ``id_token``.

        An unknown ``kid`` triggers one JWKS refresh, for key rotation.

        Raises:
            IdTokenError: Bad signature, disallowed algorithm, or a claim
                that does not validate
        """
        options = self._claims_options(nonce)
        for refresh in (False, True):
            key_set = await self._key_set(refresh)
            try:
                claims = self._jwt.decode(id_token, key_set, claims_options=options)
            except ValueError as e:
                # authlib signals a kid missing from the key set with ValueError
                if not refresh:
                    logger.info("ID token key not in cached JWKS, refreshing")
                    continue
                raise IdTokenError(f"No signing key for ID token: {e}") from e
            except JoseError as e:
                raise IdTokenError(f"ID token rejected: {e}") from e

            try:
                claims.validate(leeway=self._provider.clock_skew)
            except JoseError as e:
                raise IdTokenError(f"ID token rejected: {e}") from e
            return dict(claims)

        raise IdTokenError("No signing key for ID token")
