"""Internal endpoints the dashboard uses to reach the resource server."""

from fastapi import APIRouter, Depends
from loguru import logger
from starlette.responses import JSONResponse

from src.identity_sync.core.models.session import IdentitySession
from src.identity_sync.core.models.sync import Deferred, Failed, SyncAttemptResult
from src.identity_sync.core.services.sync.credential_selector import CredentialSelector
from src.identity_sync.core.services.sync.orchestrator import (
    SyncOrchestrator,
    log_sync_result,
)
from src.identity_sync.runtime.context import get_config
from src.identity_sync.web.http.deps import (
    get_credential_selector,
    get_optional_session,
    get_sync_orchestrator,
)

router = APIRouter(prefix="/api", tags=["sync"])

NOT_AUTHENTICATED = "Not authenticated"


def _status_for(result: SyncAttemptResult) -> int:
    if isinstance(result, Failed):
        if result.status_code is None:
            return 500
        if result.status_code < 400:
            # The resource server answered 2xx with a body we could not use
            return 502
        return result.status_code
    return 200


@router.get("/sync-user")
async def sync_user(
    session: IdentitySession | None = Depends(get_optional_session),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> JSONResponse:
    """Synchronize the session's principal to the resource server.

    Always answers with a structured body; never raises to the caller.
    """
    if session is None or not session.is_authenticated:
        return JSONResponse(
            status_code=401, content={"synced": False, "error": NOT_AUTHENTICATED}
        )

    try:
        result = await orchestrator.sync_session(session)
    except Exception as e:
        logger.exception("Error syncing user")
        return JSONResponse(
            status_code=500,
            content={"synced": False, "error": "Failed to sync user", "detail": str(e)},
        )

    log_sync_result(result, trigger="endpoint")
    body = result.to_response()
    if isinstance(result, Deferred):
        body["user"] = session.profile()
    return JSONResponse(status_code=_status_for(result), content=body)


@router.get("/auth-token")
async def auth_token(
    session: IdentitySession | None = Depends(get_optional_session),
    selector: CredentialSelector = Depends(get_credential_selector),
) -> JSONResponse:
    """Hand the browser the session's API credential, if there is one.

    A missing credential is a 200 with ``accessToken: null`` so clients do
    not retry in a loop.
    """
    if session is None:
        return JSONResponse(status_code=401, content={"error": NOT_AUTHENTICATED})

    try:
        access_token = selector.api_credential(session)
        if access_token:
            return JSONResponse(content={"accessToken": access_token})

        audience = get_config().identity_provider.audience
        logger.bind(audience=audience or "NOT SET").warning(
            "No API credential in session"
        )
        return JSONResponse(
            status_code=200,
            content={
                "accessToken": None,
                "error": "Access token not available",
                "hint": (
                    "Make sure IDP_AUDIENCE is configured and log in again. "
                    "The user will be synced on their first backend API call."
                ),
                "debug": {
                    "hasSession": True,
                    "hasUser": session.is_authenticated,
                    "audience": audience or "NOT SET",
                    "sessionKeys": session.session_keys(),
                },
            },
        )
    except Exception as e:
        logger.exception("Error getting access token")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to get access token", "detail": str(e)},
        )
