"""UserRecord domain entity."""

from datetime import datetime
from typing import Any

from pydantic import Field

from src.identity_sync.entities.core._base import Entity, utc_now


class UserRecord(Entity):
    """The resource server's copy of an externally authenticated principal.

    Exactly one record exists per ``external_subject_id``.
    """

    external_subject_id: str = Field(description="Subject claim from the provider")
    email: str | None = Field(default=None)
    display_name: str | None = Field(default=None)
    picture_url: str | None = Field(default=None)
    last_login_at: datetime = Field(default_factory=utc_now)

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
