"""
Storage connection: the contract the job-processing host talks to.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session, sessionmaker

from jobstore.cancellation import CancellationToken
from jobstore.clock import utc_now
from jobstore.config import StorageOptions
from jobstore.constants import LOCK_RESOURCE_PREFIX
from jobstore.db.connection import session_scope
from jobstore.db.schema import StorageSchema
from jobstore.db.upsert import merge
from jobstore.errors import InvalidArgumentError
from jobstore.locking.distributed_lock import DistributedLock
from jobstore.queue.providers import ClaimedJob, QueueProviderRegistry
from jobstore.transaction.write_batch import WriteBatch
from jobstore.types.job import JobData, StateData
from jobstore.types.server import ServerContext, ServerData
from jobstore.validation import (
    parse_job_id,
    require_non_negative,
    require_queues,
    require_text,
)

logger = logging.getLogger(__name__)


class StorageConnection:
    """
    Entry point for a job-processing server.

    Hands out write batches, locks and claimed jobs, and implements the
    direct reads and writes the host needs for job records, parameters,
    sets, hashes and server heartbeats.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        schema: StorageSchema,
        options: StorageOptions,
        queue_providers: QueueProviderRegistry,
    ):
        self._session_factory = session_factory
        self._schema = schema
        self._options = options
        self._queue_providers = queue_providers

    def _now(self) -> datetime:
        return utc_now(self._options.clock_offset)

    # Coordination primitives

    def create_write_batch(self) -> WriteBatch:
        return WriteBatch(
            self._session_factory,
            self._schema,
            self._options,
            self._queue_providers,
        )

    def acquire_distributed_lock(
        self,
        resource: str,
        timeout: timedelta | float,
        cancellation: CancellationToken | None = None,
    ) -> DistributedLock:
        resource = require_text(resource, "resource")
        return DistributedLock.acquire(
            self._session_factory,
            self._schema,
            f"{LOCK_RESOURCE_PREFIX}{resource}",
            timeout,
            cancellation,
            isolation_level=self._options.transaction_isolation_level,
        )

    def fetch_next_job(
        self,
        queues: Sequence[str],
        cancellation: CancellationToken,
    ) -> ClaimedJob:
        """Claim the next job from ``queues``, blocking until one is available."""
        queues = require_queues(queues)
        provider = self._queue_providers.resolve(queues)
        return provider.get_job_queue().dequeue(queues, cancellation)

    # Jobs

    def create_expired_job(
        self,
        invocation_data: str,
        arguments: str,
        parameters: dict[str, str],
        created_at: datetime,
        expire_in: timedelta,
    ) -> str:
        """
        Store a new job that expires unless a later state change persists it.

        Returns:
            The new job identifier.
        """
        if invocation_data is None:
            raise InvalidArgumentError("'invocation_data' is required")
        if parameters is None:
            raise InvalidArgumentError("'parameters' is required")
        require_non_negative(expire_in, "expire_in")

        with session_scope(self._session_factory) as session:
            result = session.execute(
                insert(self._schema.job).values(
                    invocation_data=invocation_data,
                    arguments=arguments or "",
                    created_at=created_at,
                    expire_at=created_at + expire_in,
                )
            )
            job_key = result.inserted_primary_key[0]

            if parameters:
                session.execute(
                    insert(self._schema.job_parameter),
                    [
                        {"job_id": job_key, "name": name, "value": value}
                        for name, value in parameters.items()
                    ],
                )

        logger.info("Created job", extra={"job_id": str(job_key)})
        return str(job_key)

    def get_job_data(self, job_id: str) -> JobData | None:
        job_key = parse_job_id(job_id)
        job = self._schema.job

        with self._session_factory() as session:
            row = session.execute(
                select(
                    job.c.id,
                    job.c.invocation_data,
                    job.c.arguments,
                    job.c.state_name,
                    job.c.created_at,
                    job.c.expire_at,
                ).where(job.c.id == job_key)
            ).first()

        if row is None:
            return None

        return JobData(
            job_id=str(row.id),
            invocation_data=row.invocation_data,
            arguments=row.arguments,
            state_name=row.state_name,
            created_at=row.created_at,
            expire_at=row.expire_at,
        )

    def get_state_data(self, job_id: str) -> StateData | None:
        """Current state of a job, or None when it has none."""
        job_key = parse_job_id(job_id)
        job = self._schema.job
        state = self._schema.state

        with self._session_factory() as session:
            row = session.execute(
                select(state.c.name, state.c.reason, state.c.data)
                .select_from(state.join(job, job.c.state_id == state.c.id))
                .where(job.c.id == job_key)
            ).first()

        if row is None:
            return None
        return StateData.from_row(row.name, row.reason, row.data)

    def set_job_parameter(self, job_id: str, name: str, value: str | None) -> None:
        job_key = parse_job_id(job_id)
        name = require_text(name, "name")

        with session_scope(self._session_factory) as session:
            merge(
                session,
                self._schema.job_parameter,
                {"job_id": job_key, "name": name, "value": value},
                conflict_columns=("job_id", "name"),
                update_columns=("value",),
            )

    def get_job_parameter(self, job_id: str, name: str) -> str | None:
        job_key = parse_job_id(job_id)
        name = require_text(name, "name")
        table = self._schema.job_parameter

        with self._session_factory() as session:
            return session.execute(
                select(table.c.value).where(
                    table.c.job_id == job_key,
                    table.c.name == name,
                )
            ).scalar_one_or_none()

    # Sets, hashes, counters

    def get_all_items_from_set(self, key: str) -> set[str]:
        key = require_text(key, "key")
        table = self._schema.set

        with self._session_factory() as session:
            return set(
                session.execute(select(table.c.value).where(table.c.key == key)).scalars()
            )

    def get_first_by_lowest_score_from_set(
        self,
        key: str,
        from_score: float,
        to_score: float,
    ) -> str | None:
        key = require_text(key, "key")
        if to_score < from_score:
            raise InvalidArgumentError(
                "The 'to_score' value must be higher or equal to the 'from_score' value."
            )
        table = self._schema.set

        with self._session_factory() as session:
            return session.execute(
                select(table.c.value)
                .where(table.c.key == key, table.c.score.between(from_score, to_score))
                .order_by(table.c.score)
                .limit(1)
            ).scalar_one_or_none()

    def set_range_in_hash(
        self,
        key: str,
        pairs: dict[str, str] | Iterable[tuple[str, str]],
    ) -> None:
        key = require_text(key, "key")
        if pairs is None:
            raise InvalidArgumentError("'pairs' is required")
        items = pairs.items() if isinstance(pairs, dict) else pairs

        with session_scope(
            self._session_factory, self._options.transaction_isolation_level
        ) as session:
            for field, value in items:
                merge(
                    session,
                    self._schema.hash,
                    {"key": key, "field": field, "value": value},
                    conflict_columns=("key", "field"),
                    update_columns=("value",),
                )

    def get_all_entries_from_hash(self, key: str) -> dict[str, str] | None:
        """All fields of a hash, or None when the hash does not exist."""
        key = require_text(key, "key")
        table = self._schema.hash

        with self._session_factory() as session:
            rows = session.execute(
                select(table.c.field, table.c.value).where(table.c.key == key)
            ).all()

        return {row.field: row.value for row in rows} or None

    def get_counter(self, key: str) -> int:
        """Current value of a counter: the sum of its increments."""
        key = require_text(key, "key")
        table = self._schema.counter

        with self._session_factory() as session:
            total = session.execute(
                select(func.sum(table.c.value)).where(table.c.key == key)
            ).scalar()

        return int(total or 0)

    # Servers

    def announce_server(self, server_id: str, context: ServerContext) -> None:
        server_id = require_text(server_id, "server_id")
        if context is None:
            raise InvalidArgumentError("'context' is required")

        now = self._now()
        data = ServerData(
            worker_count=context.worker_count,
            queues=list(context.queues),
            started_at=now,
        )

        with session_scope(self._session_factory) as session:
            merge(
                session,
                self._schema.server,
                {"id": server_id, "data": data.model_dump_json(), "last_heartbeat": now},
                conflict_columns=("id",),
                update_columns=("data", "last_heartbeat"),
            )

        logger.info("Server announced", extra={"server_id": server_id})

    def heartbeat(self, server_id: str) -> None:
        server_id = require_text(server_id, "server_id")
        table = self._schema.server

        with session_scope(self._session_factory) as session:
            session.execute(
                update(table)
                .where(table.c.id == server_id)
                .values(last_heartbeat=self._now())
            )

    def remove_server(self, server_id: str) -> None:
        server_id = require_text(server_id, "server_id")
        table = self._schema.server

        with session_scope(self._session_factory) as session:
            session.execute(delete(table).where(table.c.id == server_id))

        logger.info("Server removed", extra={"server_id": server_id})

    def remove_timed_out_servers(self, timeout: timedelta) -> int:
        """
        Delete servers whose last heartbeat is older than ``timeout``.

        Returns:
            Number of servers removed.
        """
        require_non_negative(timeout, "timeout")
        table = self._schema.server

        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(table).where(table.c.last_heartbeat < self._now() - timeout)
            )
            removed = result.rowcount

        if removed > 0:
            logger.info(f"Removed {removed} timed out server(s)")
        return removed
