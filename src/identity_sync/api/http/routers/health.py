"""Health check endpoints for the resource server."""

from typing import Any

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from src.identity_sync.api.http.app_data import ResourceServerDependencies
from src.identity_sync.runtime.context import get_config

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Liveness probe; does not check dependencies."""
    return {"status": "healthy", "service": "resource-server"}


@router.get("/ready", response_model=None)
async def readiness(request: Request) -> dict[str, Any] | JSONResponse:
    """Readiness probe: 503 when the database is unreachable."""
    app_deps: ResourceServerDependencies = request.app.state.app_dependencies
    config = get_config()

    db_healthy = app_deps.database_service.health_check()
    response = {
        "status": "ready" if db_healthy else "not_ready",
        "environment": config.app.environment,
        "checks": {
            "database": {
                "status": "healthy" if db_healthy else "unhealthy",
                "type": "sqlite" if config.database.is_sqlite else "sql",
            }
        },
    }
    if not db_healthy:
        return JSONResponse(status_code=503, content=response)
    return response
