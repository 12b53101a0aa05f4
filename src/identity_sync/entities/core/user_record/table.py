"""UserRecord database table model."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Column, String, UniqueConstraint
from sqlmodel import Field

from src.identity_sync.entities.core._base import EntityTable, utc_now


class UserRecordTable(EntityTable, table=True):
    """Persistence model for user records.

    The unique constraint on ``external_subject_id`` is what makes concurrent
    first logins for one subject collapse into a single row.
    """

    __tablename__ = "user_records"
    __table_args__ = (
        UniqueConstraint("external_subject_id", name="uq_user_records_subject"),
    )

    external_subject_id: str = Field(
        sa_column=Column(String(512), nullable=False, index=True)
    )
    email: str | None = Field(default=None, sa_column=Column(String(320), nullable=True))
    display_name: str | None = Field(
        default=None, sa_column=Column(String(512), nullable=True)
    )
    picture_url: str | None = Field(
        default=None, sa_column=Column(String(2048), nullable=True)
    )
    last_login_at: datetime = Field(
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),
        nullable=False,
    )
