"""HTTP client for the resource server's identity endpoint."""

import httpx
from loguru import logger

from src.identity_sync.core.models.sync import (
    Deferred,
    Failed,
    SelectedCredential,
    Synced,
    SyncAttemptResult,
)
from src.identity_sync.core.services.token.untrusted import token_shape
from src.identity_sync.runtime.config.config_data import ResourceServerConfig

NO_SESSION = "no session"
NO_CREDENTIAL_REASON = "Tokens not available in session"
FIRST_CALL_HINT = (
    "The user will be created automatically on their first API call to the "
    "resource server."
)


class SyncClient:
    """Presents a bearer credential to ``GET <resource>/api/v1/auth/me``.

    One non-cached request per credential and no retries. The cascade helper
    walks credentials in preference order and moves on only when the resource
    server rejects one as unauthenticated.
    """

    def __init__(
        self,
        resource_server: ResourceServerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._resource_server = resource_server
        self._transport = transport

    @property
    def identity_url(self) -> str:
        return self._resource_server.identity_url

    def _unreachable_hint(self) -> str:
        return (
            "Make sure the resource server is running on "
            f"{self._resource_server.base_url}"
        )

    async def attempt(self, credential: SelectedCredential | None) -> SyncAttemptResult:
        """Make a single sync call with ``credential``."""
        if credential is None or credential.is_none or not credential.token:
            return Deferred(NO_SESSION)

        log = logger.bind(
            method=credential.method,
            url=self.identity_url,
            **token_shape(credential.token),
        )
        headers = {
            "Authorization": f"Bearer {credential.token}",
            "Accept": "application/json",
            "Cache-Control": "no-store",
        }

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(self.identity_url, headers=headers)
        except httpx.HTTPError as e:
            log.warning("Resource server unreachable: {}", type(e).__name__)
            return Failed(
                error="Failed to connect to backend",
                detail=str(e) or type(e).__name__,
                hint=self._unreachable_hint(),
                method=credential.method,
            )

        if response.is_success:
            try:
                user = response.json()
            except ValueError:
                log.error("Resource server returned an undecodable body")
                return Failed(
                    error="Invalid response from backend",
                    status_code=response.status_code,
                    method=credential.method,
                )
            if not isinstance(user, dict):
                log.error("Resource server returned a non-object body")
                return Failed(
                    error="Invalid response from backend",
                    status_code=response.status_code,
                    method=credential.method,
                )

            log.bind(user_id=user.get("id")).info("User synced with resource server")
            return Synced(user=user, method=credential.method)

        message = _server_message(response)
        log.bind(status_code=response.status_code).warning(
            "Resource server rejected credential: {}", message
        )
        return Failed(
            error=message,
            status_code=response.status_code,
            method=credential.method,
            hint=FIRST_CALL_HINT,
            extra={"backendUrl": self.identity_url},
        )

    async def sync_first_accepted(
        self, candidates: list[SelectedCredential]
    ) -> SyncAttemptResult:
        """Try ``candidates`` in order until one is not rejected with a 401.

        A transport failure stops the walk, since every later tier would hit
        the same unreachable server.
        """
        if not candidates:
            return Deferred(NO_CREDENTIAL_REASON, hint=FIRST_CALL_HINT)

        result: SyncAttemptResult = Deferred(NO_CREDENTIAL_REASON, hint=FIRST_CALL_HINT)
        for credential in candidates:
            result = await self.attempt(credential)
            if isinstance(result, Failed) and result.is_auth_failure:
                logger.bind(method=credential.method).info(
                    "Credential rejected, trying next tier"
                )
                continue
            return result
        return result


def _server_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("detail"):
        detail = body["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return f"HTTP {response.status_code}"
