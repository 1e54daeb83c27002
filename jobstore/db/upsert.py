"""
Dialect-aware INSERT ... ON CONFLICT statements.
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from jobstore.errors import JobStoreError

_INSERT_CONSTRUCTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_for(session: Session) -> Any:
    dialect = session.get_bind().dialect.name
    try:
        return _INSERT_CONSTRUCTS[dialect]
    except KeyError:
        raise JobStoreError(f"Upserts are not supported for the '{dialect}' dialect") from None


def merge(
    session: Session,
    table: Table,
    values: dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
) -> None:
    """
    Insert a row or, when it collides on ``conflict_columns``, update
    ``update_columns`` of the existing row.
    """
    insert = _insert_for(session)
    stmt = insert(table).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={name: stmt.excluded[name] for name in update_columns},
    )
    session.execute(stmt)
