"""Identity endpoint the web app synchronizes against."""

from typing import Any

from fastapi import APIRouter, Depends

from src.identity_sync.api.http.deps import get_current_user
from src.identity_sync.entities.core.user_record import UserRecord

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.get("/me")
async def get_me(user: UserRecord = Depends(get_current_user)) -> dict[str, Any]:
    """Return the caller's user record, creating or refreshing it first."""
    return user.to_response()
