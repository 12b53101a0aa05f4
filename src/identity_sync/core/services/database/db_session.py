"""Database engine and session factory for the resource server."""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from src.identity_sync.runtime.config.config_data import DatabaseConfig
from src.identity_sync.runtime.context import get_config


class DbSessionService:
    def __init__(
        self,
        database_config: DatabaseConfig | None = None,
        engine: Engine | None = None,
    ):
        """Initialize the shared database engine and session factory."""
        if engine is not None:
            self._engine = engine
            return

        main_config = get_config()
        db_config = database_config or main_config.database
        engine_kwargs = self._get_engine_kwargs(db_config, main_config.app.environment)

        logger.bind(
            environment=main_config.app.environment,
            dialect=db_config.url.split(":", 1)[0],
        ).info("Initializing database engine")
        self._engine = create_engine(db_config.url, **engine_kwargs)

    @property
    def engine(self) -> Engine:
        return self._engine

    def _get_engine_kwargs(self, db_config: DatabaseConfig, environment: str) -> dict:
        if db_config.is_sqlite:
            kwargs: dict = {
                "echo": False,
                "connect_args": {"check_same_thread": False, "timeout": 20},
            }
            if db_config.url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection so every session sees the same database
                kwargs["poolclass"] = StaticPool
            if environment == "production":
                logger.warning(
                    "SQLite is not recommended for production use. "
                    "Consider PostgreSQL for better performance and reliability."
                )
            return kwargs

        connect_args = {}
        if "postgresql" in db_config.url:
            connect_args = {
                "application_name": f"{environment}_identity_sync",
                "connect_timeout": 30,
            }

        return {
            "pool_size": db_config.pool_size,
            "max_overflow": db_config.max_overflow,
            "pool_timeout": db_config.pool_timeout,
            "pool_recycle": db_config.pool_recycle,
            "pool_pre_ping": True,
            "echo": False,
            "connect_args": connect_args,
        }

    def create_tables(self) -> None:
        """Create every table registered on the SQLModel metadata."""
        # Registers the table models with the metadata
        import src.identity_sync.entities  # noqa: F401

        SQLModel.metadata.create_all(self._engine)
        logger.info("Database tables ensured")

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(self._engine, expire_on_commit=False, autoflush=True)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on error."""
        db = self.get_session()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.bind(error_type=type(e).__name__).error(
                "Database transaction failed"
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.bind(error_type=type(e).__name__).error(
                "Database health check failed: {}", e
            )
            return False

    def dispose(self) -> None:
        self._engine.dispose()
