"""Fetching and caching the identity provider's signing keys."""

from typing import Any

import httpx
from cachetools import TTLCache
from loguru import logger


class JwksError(RuntimeError):
    """The key set could not be fetched or is not a JWKS document."""


class JwksService:
    """Key sets by URL, cached for an hour unless a refresh is forced."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        ttl_seconds: int = 3600,
    ) -> None:
        self._transport = transport
        self._cache: TTLCache[str, dict[str, Any]] = TTLCache(
            maxsize=10, ttl=ttl_seconds
        )

    async def fetch_jwks(self, jwks_uri: str, refresh: bool = False) -> dict[str, Any]:
        """The key set at ``jwks_uri``.

        Raises:
            JwksError: The request failed or the body has no ``keys`` list
        """
        if not refresh and jwks_uri in self._cache:
            return self._cache[jwks_uri]

        async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
            try:
                response = await client.get(jwks_uri)
                response.raise_for_status()
                jwks = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise JwksError(f"Failed to fetch JWKS: {e}") from e

        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            raise JwksError("JWKS response has no keys")

        logger.bind(jwks_uri=jwks_uri, keys=len(jwks["keys"])).debug("JWKS fetched")
        self._cache[jwks_uri] = jwks
        return jwks
