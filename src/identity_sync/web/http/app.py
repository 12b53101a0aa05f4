"""Web app: login, session cookie, dashboard and the sync endpoints."""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from src.identity_sync.api.utils.app_startup import configure_logging, log_requests
from src.identity_sync.core.services.oidc_client_service import OidcClientService
from src.identity_sync.core.services.session.auth_session import AuthSessionService
from src.identity_sync.core.services.session.identity_session import (
    IdentitySessionService,
)
from src.identity_sync.core.services.sync.credential_selector import CredentialSelector
from src.identity_sync.core.services.sync.orchestrator import SyncOrchestrator
from src.identity_sync.core.services.sync.sync_client import SyncClient
from src.identity_sync.core.storage.session_storage import (
    SessionStorage,
    create_session_storage,
)
from src.identity_sync.runtime.context import get_config
from src.identity_sync.web.http.app_data import WebAppDependencies
from src.identity_sync.web.http.middleware.session_cookie import SessionCookieMiddleware
from src.identity_sync.web.http.routers.auth_bff import router_bff
from src.identity_sync.web.http.routers.pages import router as router_pages
from src.identity_sync.web.http.routers.sync import router as router_sync


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Referrer-Policy", "strict-origin-when-cross-origin"
        )
        if get_config().app.environment == "production":
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response


async def build_dependencies(
    session_storage: SessionStorage | None = None,
    resource_transport: httpx.AsyncBaseTransport | None = None,
    provider_transport: httpx.AsyncBaseTransport | None = None,
) -> WebAppDependencies:
    """Wire the web app's services from the active configuration.

    The transports let tests stand in for the resource server and the
    identity provider.
    """
    config = get_config()
    storage = session_storage or await create_session_storage(config.redis)

    selector = CredentialSelector()
    sync_client = SyncClient(config.resource_server, transport=resource_transport)
    redirect_uri = f"{config.app.callback_base}{config.identity_provider.callback_path}"

    return WebAppDependencies(
        session_storage=storage,
        auth_session_service=AuthSessionService(storage),
        identity_session_service=IdentitySessionService(storage),
        oidc_client_service=OidcClientService(
            config.identity_provider, redirect_uri, transport=provider_transport
        ),
        credential_selector=selector,
        sync_client=sync_client,
        sync_orchestrator=SyncOrchestrator(selector, sync_client),
    )


def create_app(
    session_storage: SessionStorage | None = None,
    resource_transport: httpx.AsyncBaseTransport | None = None,
    provider_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.app_dependencies = await build_dependencies(
            session_storage, resource_transport, provider_transport
        )
        config = get_config()
        logger.bind(
            resource_server=config.resource_server.base_url,
            audience=config.identity_provider.audience or "NOT SET",
        ).info("Web app started in {} environment", config.app.environment)
        try:
            yield
        finally:
            logger.info("Shutting down web app")
            await app.state.app_dependencies.identity_session_service.purge_expired()

    config = get_config()
    app = FastAPI(
        title=config.app.name,
        lifespan=lifespan,
        docs_url=None if config.app.environment == "production" else "/docs",
        redoc_url=None,
    )

    # Added last runs first: logging wraps the session middleware
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(SessionCookieMiddleware)
    app.middleware("http")(log_requests)

    app.include_router(router_pages)
    app.include_router(router_bff)
    app.include_router(router_sync)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "service": "web"}

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=get_config().app.web_port,
        access_log=False,  # Access logging happens in middleware
    )
