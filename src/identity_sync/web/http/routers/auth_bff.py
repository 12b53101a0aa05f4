"""BFF login endpoints: the web app is the OIDC relying party."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from loguru import logger

from src.identity_sync.core.models.session import IdentitySession
from src.identity_sync.core.security import (
    generate_nonce,
    generate_pkce_pair,
    generate_state,
    sign_session_id,
)
from src.identity_sync.core.services.oidc_client_service import OidcClientService
from src.identity_sync.core.services.session.auth_session import AuthSessionService
from src.identity_sync.core.services.session.identity_session import (
    IdentitySessionService,
)
from src.identity_sync.runtime.context import get_config
from src.identity_sync.web.http.deps import (
    get_auth_session_service,
    get_identity_session_service,
    get_oidc_client_service,
    get_optional_session,
)
from src.identity_sync.web.http.middleware.session_cookie import clear_session_cookies

router_bff = APIRouter(prefix="/auth", tags=["auth-bff"])

AUTH_SESSION_COOKIE = "auth_session_id"


def _get_secure_cookie_settings() -> dict[str, Any]:
    """Cookie flags for first-party session cookies.

    SameSite=Lax still lets the provider's top-level redirect back to the
    callback carry the auth session cookie.
    """
    config = get_config()
    return {
        "httponly": True,
        "secure": config.app.environment == "production",
        "samesite": config.session.cookie_samesite,
        "path": "/",
    }


def _home_redirect() -> RedirectResponse:
    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    response.delete_cookie(AUTH_SESSION_COOKIE, path="/")
    return response


@router_bff.get("/login")
async def initiate_login(
    return_to: str | None = Query(default=None, alias="returnTo"),
    auth_session_service: AuthSessionService = Depends(get_auth_session_service),
    oidc_client_service: OidcClientService = Depends(get_oidc_client_service),
) -> RedirectResponse:
    """Start the authorization code flow with PKCE, state and nonce."""
    config = get_config()
    if not config.identity_provider.is_configured:
        raise HTTPException(
            status_code=503, detail="Identity provider is not configured"
        )

    pkce_verifier, pkce_challenge = generate_pkce_pair()
    auth_session = await auth_session_service.create_auth_session(
        pkce_verifier=pkce_verifier,
        state=generate_state(),
        nonce=generate_nonce(),
        return_to=return_to or "/dashboard",
    )

    auth_url = oidc_client_service.build_authorization_url(
        state=auth_session.state,
        nonce=auth_session.nonce,
        code_challenge=pkce_challenge,
    )

    response = RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=AUTH_SESSION_COOKIE,
        value=auth_session.id,
        max_age=config.session.auth_session_ttl_seconds,
        **_get_secure_cookie_settings(),
    )
    return response


@router_bff.get("/callback")
async def handle_callback(
    request: Request,
    state: str | None = None,
    code: str | None = None,
    error: str | None = None,
    auth_session_service: AuthSessionService = Depends(get_auth_session_service),
    identity_session_service: IdentitySessionService = Depends(
        get_identity_session_service
    ),
    oidc_client_service: OidcClientService = Depends(get_oidc_client_service),
) -> RedirectResponse:
    """Finish the login: validate state, exchange the code, open a session."""
    auth_session_id = request.cookies.get(AUTH_SESSION_COOKIE)
    if not auth_session_id:
        raise HTTPException(status_code=400, detail="Missing auth session")

    auth_session = await auth_session_service.validate_auth_session(
        session_id=auth_session_id, state=state
    )
    if not auth_session:
        raise HTTPException(status_code=400, detail="Invalid or expired auth session")

    # Single use from here on, whatever the outcome
    await auth_session_service.delete_auth_session(auth_session_id)

    if error or not code:
        logger.bind(provider_error=error).warning("Login did not return a code")
        return _home_redirect()

    try:
        tokens = await oidc_client_service.exchange_code_for_tokens(
            code=code, pkce_verifier=auth_session.pkce_verifier
        )
        claims = await oidc_client_service.get_user_claims(tokens, auth_session.nonce)

        audience = oidc_client_service.audience
        # The access token is an API credential only when issued for our audience
        identity_session = await identity_session_service.create_identity_session(
            claims=claims,
            access_token=tokens.access_token if audience else None,
            access_token_expires_at=tokens.expires_at if audience else None,
            id_token=tokens.id_token,
            refresh_token=tokens.refresh_token,
            audience=audience,
        )
    except Exception:
        logger.exception("Authentication failed during callback")
        return _home_redirect()

    response = RedirectResponse(
        url=auth_session.return_to or "/", status_code=status.HTTP_302_FOUND
    )
    response.set_cookie(
        key=get_config().session.cookie_name,
        value=sign_session_id(identity_session.id),
        max_age=get_config().session.max_age,
        **_get_secure_cookie_settings(),
    )
    response.delete_cookie(AUTH_SESSION_COOKIE, path="/")
    return response


@router_bff.get("/logout")
async def logout(
    session: IdentitySession | None = Depends(get_optional_session),
    identity_session_service: IdentitySessionService = Depends(
        get_identity_session_service
    ),
    oidc_client_service: OidcClientService = Depends(get_oidc_client_service),
) -> RedirectResponse:
    """End the local session, then the provider session when configured."""
    config = get_config()
    if session is not None:
        await identity_session_service.delete_identity_session(session.id)

    return_to = f"{config.app.callback_base}{config.identity_provider.post_logout_path}"
    target = (
        oidc_client_service.build_logout_url(return_to)
        if config.identity_provider.is_configured
        else "/"
    )
    response = RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)
    clear_session_cookies(response, config.session.cookie_name)
    return response


@router_bff.get("/profile")
async def profile(
    session: IdentitySession | None = Depends(get_optional_session),
) -> dict[str, Any]:
    if session is None or not session.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session.profile()
