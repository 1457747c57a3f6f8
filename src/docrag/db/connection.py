"""
Database connection management.

Provides SQLAlchemy engine and session factory creation plus a
transactional session scope.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from docrag.config import settings
from docrag.db.base import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create a SQLAlchemy engine.

    In-memory SQLite URLs share one connection across threads so that every
    session sees the same database. File-based SQLite URLs get their parent
    directory created.

    Args:
        database_url: SQLAlchemy URL (default from settings)
        echo: Log SQL statements (default from settings)

    Returns:
        Engine: Configured engine
    """
    url = make_url(database_url or settings.database_url)
    echo = settings.echo_sql if echo is None else echo

    if url.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo, pool_pre_ping=True)

    if url.database in (None, "", ":memory:"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})

    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """
    Create session factory for database operations.

    Sessions use autoflush=False and expire_on_commit=False so objects stay
    readable after the transaction that loaded them has committed.
    """
    return sessionmaker(
        bind=engine or get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


def create_tables(engine: Engine) -> None:
    """Create all tables registered on the declarative base."""
    # Import models so they are registered with the metadata
    from docrag.db import models  # noqa: F401

    Base.metadata.create_all(engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success, rolls back on any exception and always closes.

    Usage:
        with session_scope(factory) as session:
            session.add(obj)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
