"""
Distributed mutual exclusion backed by the lock table.

A lock is held while a row for its resource exists. There is no owner
token and no expiry: a holder that dies without releasing leaves the
resource locked until the row is removed by hand.
"""

import logging
import time
from datetime import timedelta
from types import TracebackType

from sqlalchemy import delete, exists, insert, literal, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from jobstore.cancellation import CancellationToken
from jobstore.clock import to_seconds
from jobstore.constants import LOCK_MAX_RETRY_DELAY_SECONDS
from jobstore.db.connection import session_scope
from jobstore.db.schema import StorageSchema
from jobstore.errors import (
    InvalidArgumentError,
    LockInconsistencyError,
    LockTimeoutError,
)
from jobstore.observability.metrics import get_metrics
from jobstore.validation import require_text

logger = logging.getLogger(__name__)


class DistributedLock:
    """
    Handle for an acquired lock on a named resource.

    Use ``DistributedLock.acquire(...)`` to obtain one, and release it with
    ``release()`` or by leaving a ``with`` block.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        schema: StorageSchema,
        resource: str,
        isolation_level: str = "REPEATABLE READ",
    ):
        self._session_factory = session_factory
        self._schema = schema
        self._isolation_level = isolation_level
        self.resource = require_text(resource, "resource")
        self._completed = False

    @classmethod
    def acquire(
        cls,
        session_factory: sessionmaker[Session],
        schema: StorageSchema,
        resource: str,
        timeout: timedelta | float,
        cancellation: CancellationToken | None = None,
        isolation_level: str = "REPEATABLE READ",
    ) -> "DistributedLock":
        """
        Acquire the lock, retrying until ``timeout`` elapses.

        Raises:
            LockTimeoutError: If the resource stayed locked for the whole timeout.
            OperationCancelled: If the token is cancelled while waiting.
        """
        lock = cls(session_factory, schema, resource, isolation_level)
        timeout_seconds = to_seconds(timeout)
        if timeout_seconds < 0:
            raise InvalidArgumentError("The 'timeout' value must be positive.")

        lock._wait_for_lock(timeout_seconds, cancellation or CancellationToken())
        return lock

    def _wait_for_lock(self, timeout_seconds: float, cancellation: CancellationToken) -> None:
        metrics = get_metrics()
        started = time.monotonic()

        while True:
            cancellation.raise_if_cancelled()

            try:
                if self._try_insert():
                    metrics.record_lock_acquired(time.monotonic() - started)
                    logger.debug("Acquired lock", extra={"resource": self.resource})
                    return
            except SQLAlchemyError as e:
                # A competing insert won the race on the primary key
                logger.debug(
                    "Lock attempt failed",
                    extra={"resource": self.resource, "error": str(e)},
                )

            remaining = timeout_seconds - (time.monotonic() - started)
            if remaining <= 0:
                break

            if cancellation.wait(min(remaining, LOCK_MAX_RETRY_DELAY_SECONDS)):
                cancellation.raise_if_cancelled()

        metrics.record_lock_timeout()
        logger.warning(
            "Timed out waiting for lock",
            extra={"resource": self.resource, "timeout": timeout_seconds},
        )
        raise LockTimeoutError(self.resource)

    def _try_insert(self) -> bool:
        table = self._schema.lock
        held = table.alias("held")
        stmt = insert(table).from_select(
            ["resource"],
            select(literal(self.resource, type_=table.c.resource.type)).where(
                ~exists().where(held.c.resource == self.resource)
            ),
        )

        with session_scope(self._session_factory, self._isolation_level) as session:
            result = session.execute(stmt)
            return result.rowcount > 0

    def release(self) -> None:
        """
        Delete the lock row.

        Raises:
            LockInconsistencyError: If no row existed for the resource.
        """
        self._completed = True

        table = self._schema.lock
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(table).where(table.c.resource == self.resource)
            )
            released = result.rowcount

        if released <= 0:
            raise LockInconsistencyError(self.resource)

        logger.debug("Released lock", extra={"resource": self.resource})

    def __enter__(self) -> "DistributedLock":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self._completed:
            self.release()

    def __repr__(self) -> str:
        return f"DistributedLock(resource={self.resource!r}, released={self._completed})"
