from dataclasses import dataclass

from src.identity_sync.core.services.database.db_session import DbSessionService


@dataclass
class ResourceServerDependencies:
    database_service: DbSessionService
