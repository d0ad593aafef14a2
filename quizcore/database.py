"""Engine, session factory and transaction helpers.

The engine is built from `settings.DATABASE_URL`. SQLite is used for local
development and tests; PostgreSQL in deployment. Every connection carries a
statement timeout so no store call blocks longer than the configured bound.
"""

import sqlite3
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from quizcore.config import settings


class Base(DeclarativeBase):
    pass


def _connect_args(database_url: str, timeout_ms: int) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout_ms / 1000}
    if database_url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={timeout_ms}"}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL, settings.DB_STATEMENT_TIMEOUT_MS),
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores REFERENCES clauses unless this is set per connection.
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_db() -> Iterator[Session]:
    """Yield a `Session` for FastAPI dependency injection and close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Run the enclosed statements as one transaction.

    Commits when the block exits normally and rolls back on any exception,
    cancellation included. A nested `unit_of_work` on the same session joins
    the outer one, so only the outermost block commits.
    """
    if db.info.get("unit_of_work"):
        yield db
        return

    db.info["unit_of_work"] = True
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
    finally:
        db.info.pop("unit_of_work", None)
