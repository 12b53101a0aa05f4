"""Entities organized by business concept.

Each entity package holds the domain model (``entity.py``), its database
table (``table.py``) and the data-access layer (``repository.py``).
"""

from .core.user_record import UserRecord, UserRecordRepository, UserRecordTable

__all__ = [
    "UserRecord",
    "UserRecordTable",
    "UserRecordRepository",
]
