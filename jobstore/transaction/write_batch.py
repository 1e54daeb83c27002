"""
Atomic write batch.

Mutations are recorded as deferred commands and applied in order inside a
single transaction by ``commit()``. Nothing touches the store before that.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session, sessionmaker

from jobstore.clock import utc_now
from jobstore.config import StorageOptions
from jobstore.constants import SPAN_COMMIT_BATCH
from jobstore.db.connection import session_scope
from jobstore.db.schema import StorageSchema
from jobstore.db.upsert import merge
from jobstore.errors import InvalidArgumentError
from jobstore.observability.metrics import get_metrics
from jobstore.observability.tracing import get_tracer
from jobstore.queue.providers import QueueProviderRegistry
from jobstore.types.job import JobState
from jobstore.validation import parse_job_id, require_non_negative, require_text

logger = logging.getLogger(__name__)

Command = Callable[[Session], None]


class WriteBatch:
    """
    All-or-nothing unit of work over the storage tables.

    If any command fails during ``commit()`` the transaction is rolled back
    and the error propagates; none of the recorded mutations apply.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        schema: StorageSchema,
        options: StorageOptions,
        queue_providers: QueueProviderRegistry,
    ):
        if queue_providers is None:
            raise InvalidArgumentError("'queue_providers' is required")

        self._session_factory = session_factory
        self._schema = schema
        self._options = options
        self._queue_providers = queue_providers
        self._commands: list[Command] = []

    def __len__(self) -> int:
        return len(self._commands)

    def _now(self) -> datetime:
        return utc_now(self._options.clock_offset)

    def _queue_command(self, command: Command) -> None:
        self._commands.append(command)

    def commit(self) -> None:
        """Apply every recorded mutation in one transaction."""
        metrics = get_metrics()

        with get_tracer().start_as_current_span(SPAN_COMMIT_BATCH) as span:
            span.set_attribute("command_count", len(self._commands))
            try:
                with session_scope(
                    self._session_factory, self._options.transaction_isolation_level
                ) as session:
                    for command in self._commands:
                        command(session)
            except Exception:
                metrics.record_batch_commit("failed")
                logger.warning(
                    "Write batch rolled back",
                    extra={"command_count": len(self._commands)},
                )
                raise

        metrics.record_batch_commit("committed")
        logger.debug(
            "Write batch committed",
            extra={"command_count": len(self._commands)},
        )

    # Job expiration

    def expire_job(self, job_id: str, expire_in: timedelta) -> None:
        job_key = parse_job_id(job_id)
        require_non_negative(expire_in, "expire_in")
        job = self._schema.job

        def command(session: Session) -> None:
            session.execute(
                update(job)
                .where(job.c.id == job_key)
                .values(expire_at=self._now() + expire_in)
            )

        self._queue_command(command)

    def persist_job(self, job_id: str) -> None:
        job_key = parse_job_id(job_id)
        job = self._schema.job

        self._queue_command(
            lambda session: session.execute(
                update(job).where(job.c.id == job_key).values(expire_at=None)
            )
        )

    # Job state

    def set_job_state(self, job_id: str, state: JobState) -> None:
        """Append a state record and make it the job's current state."""
        job_key = parse_job_id(job_id)
        self._require_state(state)
        job = self._schema.job

        def command(session: Session) -> None:
            state_id = self._insert_state(session, job_key, state)
            session.execute(
                update(job)
                .where(job.c.id == job_key)
                .values(state_id=state_id, state_name=state.name)
            )

        self._queue_command(command)

    def add_job_state(self, job_id: str, state: JobState) -> None:
        """Append a state record without changing the job's current state."""
        job_key = parse_job_id(job_id)
        self._require_state(state)

        self._queue_command(lambda session: self._insert_state(session, job_key, state))

    def _require_state(self, state: JobState) -> None:
        if state is None:
            raise InvalidArgumentError("'state' is required")
        require_text(state.name, "state.name")

    def _insert_state(self, session: Session, job_key: int, state: JobState) -> int:
        result = session.execute(
            insert(self._schema.state).values(
                job_id=job_key,
                name=state.name,
                reason=state.reason,
                created_at=self._now(),
                data=state.serialize_data(),
            )
        )
        return result.inserted_primary_key[0]

    # Queues

    def add_to_queue(self, queue: str, job_id: str) -> None:
        """
        Enqueue a job. The provider owning ``queue`` is looked up when the
        batch commits.
        """
        queue = require_text(queue, "queue")
        job_id = require_text(job_id, "job_id")

        def command(session: Session) -> None:
            provider = self._queue_providers.get_provider(queue)
            provider.get_job_queue().enqueue(session, queue, job_id)

        self._queue_command(command)

    # Counters

    def increment_counter(self, key: str, expire_in: timedelta | None = None) -> None:
        self._add_counter(key, +1, expire_in)

    def decrement_counter(self, key: str, expire_in: timedelta | None = None) -> None:
        self._add_counter(key, -1, expire_in)

    def _add_counter(self, key: str, value: int, expire_in: timedelta | None) -> None:
        key = require_text(key, "key")
        if expire_in is not None:
            require_non_negative(expire_in, "expire_in")
        counter = self._schema.counter

        def command(session: Session) -> None:
            expire_at = self._now() + expire_in if expire_in is not None else None
            session.execute(
                insert(counter).values(key=key, value=value, expire_at=expire_at)
            )

        self._queue_command(command)

    # Sets

    def add_to_set(self, key: str, value: str, score: float = 0.0) -> None:
        """Add a member, or update its score when it is already in the set."""
        key = require_text(key, "key")
        if value is None:
            raise InvalidArgumentError("'value' is required")
        table = self._schema.set

        self._queue_command(
            lambda session: merge(
                session,
                table,
                {"key": key, "value": value, "score": float(score)},
                conflict_columns=("key", "value"),
                update_columns=("score",),
            )
        )

    def remove_from_set(self, key: str, value: str) -> None:
        key = require_text(key, "key")
        table = self._schema.set

        self._queue_command(
            lambda session: session.execute(
                delete(table).where(table.c.key == key, table.c.value == value)
            )
        )

    # Lists

    def insert_to_list(self, key: str, value: str) -> None:
        key = require_text(key, "key")
        table = self._schema.list

        self._queue_command(
            lambda session: session.execute(insert(table).values(key=key, value=value))
        )

    def remove_from_list(self, key: str, value: str) -> None:
        """Remove every occurrence of ``value`` from the list."""
        key = require_text(key, "key")
        table = self._schema.list

        self._queue_command(
            lambda session: session.execute(
                delete(table).where(table.c.key == key, table.c.value == value)
            )
        )

    def trim_list(self, key: str, keep_starting_from: int, keep_ending_at: int) -> None:
        """
        Keep only the entries whose insertion rank lies in
        ``[keep_starting_from, keep_ending_at]`` (zero based, inclusive).

        An empty range removes the whole list.
        """
        key = require_text(key, "key")
        if keep_starting_from < 0 or keep_ending_at < 0:
            raise InvalidArgumentError("List range bounds must not be negative")
        table = self._schema.list

        if keep_starting_from > keep_ending_at:
            stmt = delete(table).where(table.c.key == key)
        else:
            keep = table.alias("keep")
            kept_ids = (
                select(keep.c.id)
                .where(keep.c.key == key)
                .order_by(keep.c.id)
                .offset(keep_starting_from)
                .limit(keep_ending_at - keep_starting_from + 1)
            )
            stmt = delete(table).where(table.c.key == key, table.c.id.not_in(kept_ids))

        self._queue_command(lambda session: session.execute(stmt))

    # Hashes

    def set_range_in_hash(self, key: str, pairs: dict[str, str] | Iterable[tuple[str, str]]) -> None:
        """Merge fields into a hash; existing fields are overwritten."""
        key = require_text(key, "key")
        if pairs is None:
            raise InvalidArgumentError("'pairs' is required")
        items = list(pairs.items()) if isinstance(pairs, dict) else list(pairs)
        table = self._schema.hash

        def command(session: Session) -> None:
            for field, value in items:
                merge(
                    session,
                    table,
                    {"key": key, "field": field, "value": value},
                    conflict_columns=("key", "field"),
                    update_columns=("value",),
                )

        self._queue_command(command)

    def remove_hash(self, key: str) -> None:
        key = require_text(key, "key")
        table = self._schema.hash

        self._queue_command(
            lambda session: session.execute(delete(table).where(table.c.key == key))
        )
