"""FastAPI dependency implementations for the web app."""

from __future__ import annotations

from fastapi import Request

from src.identity_sync.core.models.session import IdentitySession
from src.identity_sync.core.services.oidc_client_service import OidcClientService
from src.identity_sync.core.services.session.auth_session import AuthSessionService
from src.identity_sync.core.services.session.identity_session import (
    IdentitySessionService,
)
from src.identity_sync.core.services.sync.credential_selector import CredentialSelector
from src.identity_sync.core.services.sync.orchestrator import SyncOrchestrator
from src.identity_sync.web.http.app_data import WebAppDependencies


def _deps(request: Request) -> WebAppDependencies:
    return request.app.state.app_dependencies


def get_auth_session_service(request: Request) -> AuthSessionService:
    return _deps(request).auth_session_service


def get_identity_session_service(request: Request) -> IdentitySessionService:
    return _deps(request).identity_session_service


def get_oidc_client_service(request: Request) -> OidcClientService:
    return _deps(request).oidc_client_service


def get_credential_selector(request: Request) -> CredentialSelector:
    return _deps(request).credential_selector


def get_sync_orchestrator(request: Request) -> SyncOrchestrator:
    return _deps(request).sync_orchestrator


def get_optional_session(request: Request) -> IdentitySession | None:
    """The session loaded by the cookie middleware, if any."""
    return getattr(request.state, "identity_session", None)
