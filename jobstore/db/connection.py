"""
Database connection management.
Handles SQLAlchemy engine and session creation for the storage layer.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from jobstore.config import Settings

logger = logging.getLogger(__name__)

# SQLite only understands these isolation levels; anything weaker or
# intermediate is served by its serialized writer.
_SQLITE_ISOLATION_LEVELS = frozenset({"SERIALIZABLE", "READ UNCOMMITTED", "AUTOCOMMIT"})


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_storage_engine(database_url: str, **kwargs: Any) -> Engine:
    """
    Create a synchronous engine suitable for the storage layer.

    SQLite engines are shared across worker threads and get foreign keys
    enabled so that job deletion cascades.

    Args:
        database_url: SQLAlchemy database URL.
        **kwargs: Extra arguments forwarded to ``create_engine``.

    Returns:
        Engine: The SQLAlchemy engine instance.
    """
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        engine = create_engine(database_url, connect_args=connect_args, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(database_url, **kwargs)


def get_engine(settings: Settings) -> Engine:
    """
    Create the engine described by the application settings.

    Args:
        settings: Application settings.

    Returns:
        Engine: The SQLAlchemy engine instance.
    """
    if settings.database_url.startswith("sqlite"):
        return create_storage_engine(
            settings.database_url,
            echo=settings.log_level == "DEBUG",
        )
    return create_storage_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.log_level == "DEBUG",
    )


def get_test_engine(database_url: str) -> Engine:
    """
    Create a test database engine with NullPool.

    Args:
        database_url: The database URL for testing.

    Returns:
        Engine: The test SQLAlchemy engine instance.
    """
    return create_storage_engine(database_url, poolclass=NullPool, echo=False)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build the session factory used by every storage component."""
    return sessionmaker(
        bind=engine,
        class_=Session,
        expire_on_commit=False,
        autoflush=False,
    )


def resolve_isolation_level(engine: Engine, isolation_level: str) -> str:
    """
    Map a requested isolation level onto one the dialect supports.

    SQLite serializes writers, so any level it does not know is served by
    SERIALIZABLE.
    """
    if engine.dialect.name == "sqlite" and isolation_level not in _SQLITE_ISOLATION_LEVELS:
        return "SERIALIZABLE"
    return isolation_level


def begin_isolated(session: Session, isolation_level: str) -> None:
    """
    Pin the isolation level of the session's transaction.

    Must be called before the first statement of the transaction.
    """
    bind = session.get_bind()
    session.connection(
        execution_options={
            "isolation_level": resolve_isolation_level(bind, isolation_level),
        }
    )


@contextmanager
def session_scope(
    factory: sessionmaker[Session],
    isolation_level: str | None = None,
) -> Generator[Session]:
    """
    Context manager for a single transaction.

    Commits when the block exits normally, rolls back and re-raises otherwise.

    Yields:
        Session: A database session with an open transaction.
    """
    with factory() as session:
        if isolation_level is not None:
            begin_isolated(session, isolation_level)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
