"""
Bounded retry for transient store conflicts.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from jobstore.constants import DEFAULT_CONFLICT_RETRY_ATTEMPTS, TRANSIENT_SQLSTATES

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_conflict(exc: BaseException) -> bool:
    """
    Classify serialization failures and deadlocks as transient.

    PostgreSQL reports them through SQLSTATE 40001/40P01; SQLite reports a
    busy writer as "database is locked".
    """
    if not isinstance(exc, DBAPIError):
        return False

    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True

    return isinstance(exc, OperationalError) and "database is locked" in str(orig)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry an operation a bounded number of times on transient conflicts.

    Anything the predicate does not classify as transient propagates on the
    first failure; a transient failure on the last attempt propagates
    unchanged.
    """

    max_attempts: int = DEFAULT_CONFLICT_RETRY_ATTEMPTS
    is_transient: Callable[[BaseException], bool] = field(default=is_transient_conflict)
    on_retry: Callable[[BaseException, int], None] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def run(self, operation: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return operation()
            except Exception as exc:
                if attempt >= self.max_attempts or not self.is_transient(exc):
                    raise
                logger.debug(
                    "Transient conflict, retrying",
                    extra={"attempt": attempt, "error": str(exc)},
                )
                if self.on_retry is not None:
                    self.on_retry(exc, attempt)
                attempt += 1
