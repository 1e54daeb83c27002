"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta

import pytest
from sqlalchemy import Engine, insert, select
from sqlalchemy.orm import Session, sessionmaker

from jobstore.cancellation import CancellationToken
from jobstore.clock import utc_now
from jobstore.config import Settings, StorageOptions
from jobstore.db import (
    create_session_factory,
    drop_schema,
    get_test_engine,
    install_schema,
)
from jobstore.db.schema import StorageSchema
from jobstore.storage import JobStorage, StorageConnection

# Point at PostgreSQL with TEST_DATABASE_URL; defaults to a per-test SQLite file
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def database_url(tmp_path) -> str:
    """Get the test database URL."""
    return TEST_DATABASE_URL or f"sqlite:///{tmp_path / 'jobstore.db'}"


@pytest.fixture
def storage_options() -> StorageOptions:
    """Options with a short poll interval so blocking tests finish quickly."""
    return StorageOptions(
        prefix="test",
        queue_poll_interval=timedelta(milliseconds=100),
        invisibility_timeout=timedelta(minutes=30),
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        database_url="sqlite://",
        storage_prefix="test",
        queue_poll_interval_seconds=0.1,
        invisibility_timeout_seconds=60,
        log_level="DEBUG",
        log_format="console",
    )


@pytest.fixture
def engine(database_url: str) -> Generator[Engine]:
    """Create a database engine for tests."""
    engine = get_test_engine(database_url)

    yield engine

    engine.dispose()


@pytest.fixture
def schema(engine: Engine, storage_options: StorageOptions) -> Generator[StorageSchema]:
    """Install a clean schema for each test."""
    schema = StorageSchema(storage_options.prefix)
    drop_schema(engine, schema)
    install_schema(engine, schema)

    yield schema

    drop_schema(engine, schema)


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def storage(engine: Engine, schema: StorageSchema, storage_options: StorageOptions) -> JobStorage:
    return JobStorage(engine, storage_options)


@pytest.fixture
def connection(storage: JobStorage) -> StorageConnection:
    return storage.get_connection()


@pytest.fixture
def cancellation() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def create_job(session_factory: sessionmaker[Session], schema: StorageSchema) -> Callable[..., str]:
    """Insert a bare job row and return its id."""

    def _create(expire_at: datetime | None = None) -> str:
        with session_factory.begin() as session:
            result = session.execute(
                insert(schema.job).values(
                    invocation_data='{"type": "Example", "method": "Run"}',
                    arguments="[]",
                    created_at=utc_now(),
                    expire_at=expire_at,
                )
            )
            return str(result.inserted_primary_key[0])

    return _create


@pytest.fixture
def add_queue_entry(session_factory: sessionmaker[Session], schema: StorageSchema) -> Callable[..., int]:
    """Insert a queue entry directly and return its id."""

    def _add(job_id: str, queue: str = "default", fetched_at: datetime | None = None) -> int:
        with session_factory.begin() as session:
            result = session.execute(
                insert(schema.job_queue).values(
                    job_id=int(job_id),
                    queue=queue,
                    fetched_at=fetched_at,
                )
            )
            return result.inserted_primary_key[0]

    return _add


@pytest.fixture
def fetch_rows(session_factory: sessionmaker[Session]) -> Callable[..., list]:
    """Read all rows of a table, ordered by the given column."""

    def _fetch(table, *where, order_by=None) -> list:
        stmt = select(table).where(*where)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        with session_factory() as session:
            return session.execute(stmt).all()

    return _fetch
