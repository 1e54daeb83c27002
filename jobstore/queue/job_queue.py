"""
Persistent job queue backed by the job queue table.
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from functools import partial

from sqlalchemy import ColumnElement, FromClause, Row, insert, select, update
from sqlalchemy.orm import Session, sessionmaker

from jobstore.cancellation import CancellationToken
from jobstore.clock import utc_now
from jobstore.config import StorageOptions
from jobstore.constants import SPAN_DEQUEUE
from jobstore.db.connection import session_scope
from jobstore.db.retry import RetryPolicy
from jobstore.db.schema import StorageSchema
from jobstore.errors import InvalidArgumentError
from jobstore.observability.metrics import get_metrics
from jobstore.observability.tracing import get_tracer
from jobstore.queue.fetched_job import FetchedJob
from jobstore.validation import parse_job_id, require_queues, require_text

logger = logging.getLogger(__name__)

# Builds a visibility condition against a (possibly aliased) queue table
FetchCondition = Callable[[FromClause, datetime], ColumnElement[bool]]


class SqlJobQueue:
    """
    Durable queue of job identifiers with invisibility-timeout recovery.

    A queue entry is visible when it was never claimed, or when its claim is
    older than the invisibility timeout. Claiming sets ``fetched_at`` in the
    same statement that selects the entry, so concurrent dequeuers are
    serialized by transaction isolation. Entries are only deleted on
    acknowledgement, which gives at-least-once delivery.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        schema: StorageSchema,
        options: StorageOptions,
        retry_policy: RetryPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._schema = schema
        self._options = options
        self._metrics = get_metrics()
        self._retry = retry_policy or RetryPolicy(
            on_retry=lambda exc, attempt: self._metrics.record_dequeue_conflict()
        )
        self._fetch_conditions: tuple[FetchCondition, ...] = (
            self._not_fetched,
            self._fetch_timed_out,
        )

    def enqueue(self, session: Session, queue: str, job_id: str) -> None:
        """
        Add a job to a queue inside the caller's transaction.

        Never commits: the caller owns the transaction.
        """
        if session is None:
            raise InvalidArgumentError("'session' is required")
        queue = require_text(queue, "queue")
        job_key = parse_job_id(job_id)

        session.execute(
            insert(self._schema.job_queue).values(job_id=job_key, queue=queue)
        )

    def dequeue(
        self,
        queues: Sequence[str],
        cancellation: CancellationToken,
    ) -> FetchedJob:
        """
        Block until an entry from one of ``queues`` is claimed.

        Unclaimed entries and timed-out claims are tried in turn; the poll
        interval is only slept after the last condition of a round found
        nothing.

        Raises:
            OperationCancelled: If the token is cancelled while waiting.
        """
        queues = require_queues(queues)
        if cancellation is None:
            raise InvalidArgumentError("'cancellation' is required")

        current = 0
        with get_tracer().start_as_current_span(SPAN_DEQUEUE) as span:
            span.set_attribute("queues", ",".join(queues))

            while True:
                cancellation.raise_if_cancelled()

                condition = self._fetch_conditions[current]
                row = self._retry.run(partial(self._try_claim, queues, condition))
                if row is not None:
                    break

                if current == len(self._fetch_conditions) - 1:
                    cancellation.wait(self._options.queue_poll_interval)
                    cancellation.raise_if_cancelled()

                current = (current + 1) % len(self._fetch_conditions)

            span.set_attribute("job_id", str(row.job_id))

        self._metrics.record_job_fetched(row.queue)
        logger.debug(
            "Fetched job from queue",
            extra={"job_id": str(row.job_id), "queue": row.queue},
        )

        return FetchedJob(
            self._session_factory,
            self._schema,
            id=row.id,
            job_id=str(row.job_id),
            queue=row.queue,
        )

    def _try_claim(self, queues: list[str], condition: FetchCondition) -> Row | None:
        now = utc_now(self._options.clock_offset)
        table = self._schema.job_queue
        candidates = table.alias("candidate")

        candidate_id = (
            select(candidates.c.id)
            .where(
                candidates.c.queue.in_(queues),
                condition(candidates, now),
            )
            .order_by(candidates.c.fetched_at, candidates.c.job_id)
            .limit(1)
            .scalar_subquery()
        )

        stmt = (
            update(table)
            .where(table.c.id == candidate_id, condition(table, now))
            .values(fetched_at=now)
            .returning(table.c.id, table.c.job_id, table.c.queue)
        )

        with session_scope(
            self._session_factory, self._options.transaction_isolation_level
        ) as session:
            return session.execute(stmt).first()

    def _not_fetched(self, table: FromClause, now: datetime) -> ColumnElement[bool]:
        return table.c.fetched_at.is_(None)

    def _fetch_timed_out(self, table: FromClause, now: datetime) -> ColumnElement[bool]:
        return table.c.fetched_at < now + self._options.invisibility_offset
