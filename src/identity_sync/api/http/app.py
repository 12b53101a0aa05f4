"""Resource server: owns the user table and the identity endpoint."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.identity_sync.api.http.app_data import ResourceServerDependencies
from src.identity_sync.api.http.routers.auth import router as router_auth
from src.identity_sync.api.http.routers.health import router as router_health
from src.identity_sync.api.utils.app_startup import configure_logging, log_requests
from src.identity_sync.core.services.database.db_session import DbSessionService
from src.identity_sync.runtime.context import get_config


def create_app(database_service: DbSessionService | None = None) -> FastAPI:
    """Build the resource server.

    Args:
        database_service: Pre-built database service, mainly for tests. When
            omitted one is created from configuration at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_service = database_service or DbSessionService()
        db_service.create_tables()
        app.state.app_dependencies = ResourceServerDependencies(
            database_service=db_service
        )
        logger.info(
            "Resource server started in {} environment",
            get_config().app.environment,
        )
        try:
            yield
        finally:
            logger.info("Shutting down resource server")
            if database_service is None:
                db_service.dispose()

    config = get_config()
    app = FastAPI(
        title="Identity Sync resource server",
        lifespan=lifespan,
        docs_url=None if config.app.environment == "production" else "/docs",
        redoc_url=None if config.app.environment == "production" else "/redoc",
    )

    if config.app.environment == "production" and "*" in config.app.cors.origins:
        raise RuntimeError(
            "CORS misconfigured: cannot use '*' with allow_credentials=True in production"
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.app.cors.origins,
        allow_credentials=config.app.cors.allow_credentials,
        allow_methods=config.app.cors.allow_methods,
        allow_headers=config.app.cors.allow_headers,
    )
    app.middleware("http")(log_requests)

    app.include_router(router_auth)
    app.include_router(router_health)
    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=get_config().app.api_port,
        access_log=False,  # Access logging happens in middleware
    )
