"""FastAPI dependencies for the resource server."""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, HTTPException, Request
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from src.identity_sync.api.http.app_data import ResourceServerDependencies
from src.identity_sync.core.services.token.untrusted import (
    UntrustedTokenError,
    decode_claims,
    token_shape,
)
from src.identity_sync.core.services.user.user_management import (
    IdentityClaims,
    MissingSubjectError,
    UserManagementService,
)
from src.identity_sync.entities.core.user_record import UserRecord


def get_db_session(request: Request) -> Iterator[Session]:
    """Yield a database session that is closed after the request."""
    app_deps: ResourceServerDependencies = request.app.state.app_dependencies
    db = app_deps.database_service.get_session()
    try:
        yield db
    finally:
        db.close()


def get_user_management_service(
    db_session: Session = Depends(get_db_session),
) -> UserManagementService:
    return UserManagementService(db_session)


def get_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    return auth_header.split(" ", 1)[1].strip()


def get_identity_claims(token: str = Depends(get_bearer_token)) -> IdentityClaims:
    """Read identity claims from the bearer token without verifying it.

    Failures are logged with the token's shape, never its content.
    """
    try:
        payload = decode_claims(token)
        return IdentityClaims.from_payload(payload)
    except UntrustedTokenError as e:
        logger.bind(**token_shape(token)).warning("Bearer token rejected: {}", e.reason)
        raise HTTPException(status_code=401, detail=e.reason) from e
    except MissingSubjectError as e:
        logger.bind(**token_shape(token)).warning("Bearer token rejected: {}", e)
        raise HTTPException(status_code=401, detail=str(e)) from e


def get_current_user(
    request: Request,
    claims: IdentityClaims = Depends(get_identity_claims),
    user_service: UserManagementService = Depends(get_user_management_service),
) -> UserRecord:
    """Authenticate the bearer and create or update its user record."""
    try:
        user = user_service.upsert_from_claims(claims)
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=500, detail="Failed to persist user record"
        ) from e

    request.state.subject = claims.subject
    return user
