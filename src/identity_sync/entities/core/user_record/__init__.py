"""Resource-server user record: entity, table and repository."""

from .entity import UserRecord
from .repository import UserRecordRepository
from .table import UserRecordTable

__all__ = ["UserRecord", "UserRecordTable", "UserRecordRepository"]
