from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pymecrm.core.config import get_settings
from pymecrm.core.database import Base, get_db
from pymecrm.crm.api import get_repositories
from pymecrm.crm.repositories import CRMRepositories
from pymecrm.main import app


class FakeClock:
    """Deterministic clock: every reading moves time forward by one second."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def repos(clock: FakeClock) -> CRMRepositories:
    return CRMRepositories(clock=clock)


@pytest.fixture()
def client(db_session: Session, repos: CRMRepositories) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_repositories] = lambda: repos
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def isolated_client(db_session: Session, repos: CRMRepositories) -> Generator[TestClient, None, None]:
    """Client whose requests each open their own session on the shared test engine."""
    factory = sessionmaker(bind=db_session.get_bind(), autocommit=False, autoflush=False, expire_on_commit=False)

    def override_get_db() -> Generator[Session, None, None]:
        session = factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_repositories] = lambda: repos
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
