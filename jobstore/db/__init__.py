"""
Database module.
Contains engine/session management, the prefix-scoped schema, bootstrap,
and transient-conflict retry.
"""

from jobstore.db.bootstrap import drop_schema, install_schema
from jobstore.db.connection import (
    begin_isolated,
    create_session_factory,
    create_storage_engine,
    get_engine,
    get_test_engine,
    session_scope,
)
from jobstore.db.retry import RetryPolicy, is_transient_conflict
from jobstore.db.schema import StorageSchema

__all__ = [
    "create_storage_engine",
    "create_session_factory",
    "get_engine",
    "get_test_engine",
    "session_scope",
    "begin_isolated",
    "install_schema",
    "drop_schema",
    "RetryPolicy",
    "is_transient_conflict",
    "StorageSchema",
]
