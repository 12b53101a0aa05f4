from sqlmodel import Session, select

from src.identity_sync.entities.core.user_record.entity import UserRecord
from src.identity_sync.entities.core.user_record.table import UserRecordTable


class UserRecordRepository:
    """Data-access layer for user records."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_subject(self, subject: str) -> UserRecord | None:
        statement = select(UserRecordTable).where(
            UserRecordTable.external_subject_id == subject
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return UserRecord.model_validate(row, from_attributes=True)

    def create(self, record: UserRecord) -> UserRecord:
        row = UserRecordTable(**record.model_dump())
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return UserRecord.model_validate(row, from_attributes=True)

    def update(self, record: UserRecord) -> UserRecord:
        row = self._session.get(UserRecordTable, record.id)
        if row is None:
            raise ValueError(f"User record {record.id} not found")
        for field, value in record.model_dump(exclude={"id", "created_at"}).items():
            setattr(row, field, value)
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return UserRecord.model_validate(row, from_attributes=True)

    def count(self) -> int:
        return len(self._session.exec(select(UserRecordTable.id)).all())
