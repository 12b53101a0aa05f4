from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import Engine, StaticPool
from sqlmodel import Session, SQLModel, create_engine

from src.identity_sync.core.services.database.db_session import DbSessionService
from src.identity_sync.runtime.config.config_data import (
    AppConfig,
    ConfigData,
    DatabaseConfig,
    IdentityProviderConfig,
    ResourceServerConfig,
    SessionConfig,
)
from src.identity_sync.runtime.context import get_context

IDP_DOMAIN = "idp.test"
ISSUER = f"https://{IDP_DOMAIN}/"
CLIENT_ID = "test-client-id"
AUDIENCE = "https://api.resumedb.test"
RESOURCE_SERVER_URL = "http://resource.test"


@pytest.fixture
def test_config() -> ConfigData:
    """Configuration for a fully configured deployment."""
    return ConfigData(
        app=AppConfig(environment="test", base_url="http://localhost:3000"),
        identity_provider=IdentityProviderConfig(
            domain=IDP_DOMAIN,
            client_id=CLIENT_ID,
            client_secret="test-client-secret",
            audience=AUDIENCE,
        ),
        resource_server=ResourceServerConfig(base_url=RESOURCE_SERVER_URL),
        session=SessionConfig(secret="test-session-secret"),
        database=DatabaseConfig(url="sqlite://"),
    )


@pytest.fixture
def use_config(monkeypatch):
    """Install a configuration for the duration of a test.

    Patches the default context object rather than setting the context
    variable, so threads started by TestClient see it too.
    """

    def _apply(config: ConfigData) -> ConfigData:
        monkeypatch.setattr(get_context(), "config", config)
        return config

    return _apply


@pytest.fixture
def configured(use_config, test_config: ConfigData) -> ConfigData:
    return use_config(test_config)


@pytest.fixture
def db_engine() -> Generator[Engine]:
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import models to register them with the metadata
    from src.identity_sync.entities.core.user_record import UserRecordTable  # noqa: F401

    SQLModel.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine) -> Generator[Session]:
    with Session(db_engine, expire_on_commit=False) as session:
        try:
            yield session
        finally:
            session.rollback()


@pytest.fixture
def database_service(db_engine: Engine) -> DbSessionService:
    return DbSessionService(engine=db_engine)


class SteppingClock:
    """Deterministic clock; each ``advance`` moves it forward."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock(datetime(2025, 1, 15, 9, 30, tzinfo=UTC))
