"""
Expiration sweeper for removing outdated records.

Each pass walks the expiring tables in a fixed order and deletes rows whose
``expire_at`` is in the past, in bounded batches committed one by one.
Rows without an expiration are never touched.
"""

import logging
from datetime import timedelta

from sqlalchemy import Table, delete, select
from sqlalchemy.orm import Session, sessionmaker

from jobstore.cancellation import CancellationToken
from jobstore.clock import utc_now
from jobstore.config import StorageOptions
from jobstore.constants import (
    DEFAULT_EXPIRATION_CHECK_INTERVAL_SECONDS,
    EXPIRATION_BATCH_SIZE,
    EXPIRATION_DELAY_BETWEEN_PASSES_SECONDS,
    SPAN_SWEEP,
)
from jobstore.db.connection import session_scope
from jobstore.db.schema import StorageSchema
from jobstore.observability.metrics import get_metrics
from jobstore.observability.tracing import get_tracer

logger = logging.getLogger(__name__)


class ExpirationSweeper:
    """
    Recurring unit of work that reclaims expired rows.

    Not self-scheduling: an external runner calls ``execute`` repeatedly.
    Each call ends by waiting for the check interval.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        schema: StorageSchema,
        options: StorageOptions,
        check_interval: timedelta = timedelta(seconds=DEFAULT_EXPIRATION_CHECK_INTERVAL_SECONDS),
        batch_size: int = EXPIRATION_BATCH_SIZE,
        delay_between_passes: timedelta = timedelta(seconds=EXPIRATION_DELAY_BETWEEN_PASSES_SECONDS),
    ):
        """
        Initialize the sweeper.

        Args:
            session_factory: Factory for storage sessions.
            schema: Tables of the storage prefix.
            options: Storage options (clock offset).
            check_interval: Wait after a full pass over all tables.
            batch_size: Maximum rows deleted per transaction.
            delay_between_passes: Pause after each batch that removed rows.
        """
        self._session_factory = session_factory
        self._schema = schema
        self._options = options
        self.check_interval = check_interval
        self.batch_size = batch_size
        self.delay_between_passes = delay_between_passes
        self._metrics = get_metrics()

    def execute(self, cancellation: CancellationToken) -> int:
        """
        Run one sweep over every expiring table.

        Returns:
            Number of rows removed.

        Raises:
            OperationCancelled: If cancelled between batches or tables.
        """
        total = 0

        with get_tracer().start_as_current_span(SPAN_SWEEP):
            for table in self._schema.expiring_tables:
                cancellation.raise_if_cancelled()
                total += self._sweep_table(table, cancellation)

        cancellation.wait(self.check_interval)
        return total

    def _sweep_table(self, table: Table, cancellation: CancellationToken) -> int:
        logger.debug("Removing outdated records", extra={"table": table.name})
        total = 0

        while True:
            removed = self._remove_batch(table)
            if removed == 0:
                break

            total += removed
            self._metrics.record_expired_removed(table.name, removed)
            logger.info(
                f"Removed {removed} outdated record(s) from '{table.name}' table",
                extra={"table": table.name, "removed": removed},
            )

            cancellation.wait(self.delay_between_passes)
            cancellation.raise_if_cancelled()

        return total

    def _remove_batch(self, table: Table) -> int:
        now = utc_now(self._options.clock_offset)
        expired = table.alias("expired")
        expired_ids = (
            select(expired.c.id)
            .where(expired.c.expire_at < now)
            .limit(self.batch_size)
        )

        with session_scope(self._session_factory) as session:
            result = session.execute(delete(table).where(table.c.id.in_(expired_ids)))
            return result.rowcount

    def __str__(self) -> str:
        return "SQL Records Expiration Sweeper"
