from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from src.identity_sync.entities.core._base import utc_now
from src.identity_sync.entities.core.user_record.entity import UserRecord
from src.identity_sync.entities.core.user_record.repository import UserRecordRepository


class MissingSubjectError(ValueError):
    """Claims carry no usable ``sub``."""


@dataclass(frozen=True)
class IdentityClaims:
    """The subset of token claims the resource server stores."""

    subject: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "IdentityClaims":
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise MissingSubjectError("missing subject claim")

        def text(key: str) -> str | None:
            value = payload.get(key)
            return value if isinstance(value, str) and value else None

        return cls(
            subject=subject,
            email=text("email"),
            name=text("name") or text("nickname"),
            picture=text("picture"),
        )


def _apply_non_empty(record: UserRecord, field: str, incoming: str | None) -> bool:
    if incoming and incoming != getattr(record, field):
        setattr(record, field, incoming)
        return True
    return False


class UserManagementService:
    """Create-or-update of user records keyed by the provider subject."""

    def __init__(
        self,
        db_session: Session,
        now: Callable[[], datetime] = utc_now,
    ):
        self._db_session = db_session
        self._user_repo = UserRecordRepository(db_session)
        self._now = now

    def upsert_from_claims(self, claims: IdentityClaims) -> UserRecord:
        """Idempotent upsert: one record per subject, never blanked out.

        A new subject gets a record with fresh timestamps. A known subject
        gets ``last_login_at`` bumped, and each profile field is replaced only
        by a non-empty value that differs from the stored one.
        """
        try:
            existing = self._user_repo.get_by_subject(claims.subject)
            if existing is None:
                try:
                    record = self._create(claims)
                    self._db_session.commit()
                    logger.bind(user_id=record.id).info("User record created")
                    return record
                except IntegrityError:
                    # Lost a race with a concurrent first login for this subject
                    self._db_session.rollback()
                    existing = self._user_repo.get_by_subject(claims.subject)
                    if existing is None:
                        raise

            record = self._update(existing, claims)
            self._db_session.commit()
            return record
        except SQLAlchemyError as e:
            logger.bind(error_type=type(e).__name__).error(
                "Error during user record upsert: {}", e
            )
            self._db_session.rollback()
            raise

    def _create(self, claims: IdentityClaims) -> UserRecord:
        now = self._now()
        return self._user_repo.create(
            UserRecord(
                external_subject_id=claims.subject,
                email=claims.email,
                display_name=claims.name,
                picture_url=claims.picture,
                last_login_at=now,
                created_at=now,
                updated_at=now,
            )
        )

    def _update(self, record: UserRecord, claims: IdentityClaims) -> UserRecord:
        now = self._now()
        changed = [
            field
            for field, incoming in (
                ("email", claims.email),
                ("display_name", claims.name),
                ("picture_url", claims.picture),
            )
            if _apply_non_empty(record, field, incoming)
        ]
        record.last_login_at = now
        record.updated_at = now
        if changed:
            logger.bind(user_id=record.id, fields=changed).info("User record updated")
        return self._user_repo.update(record)
