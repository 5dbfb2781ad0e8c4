from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from pymecrm.core.config import get_settings


class Base(DeclarativeBase):
    pass


def build_engine(url: str | None = None, *, echo: bool | None = None) -> Engine:
    settings = get_settings()
    resolved_url = url or settings.database_url
    # Hosting platforms hand out postgres:// but SQLAlchemy 2.x only knows postgresql://
    if resolved_url.startswith("postgres://"):
        resolved_url = resolved_url.replace("postgres://", "postgresql+psycopg://", 1)

    resolved_echo = settings.database_echo if echo is None else echo
    if resolved_url.startswith("sqlite"):
        return create_engine(resolved_url, echo=resolved_echo, connect_args={"check_same_thread": False})
    return create_engine(resolved_url, echo=resolved_echo, pool_pre_ping=True, pool_size=5, max_overflow=10)


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
