"""
Handle for a claimed queue entry.
"""

import logging
from types import TracebackType

from sqlalchemy import delete, update
from sqlalchemy.orm import Session, sessionmaker

from jobstore.db.connection import session_scope
from jobstore.db.schema import StorageSchema
from jobstore.observability.metrics import get_metrics
from jobstore.validation import require_text

logger = logging.getLogger(__name__)


class FetchedJob:
    """
    A queue entry claimed by ``SqlJobQueue.dequeue``.

    The entry stays in the table until it is acknowledged. Leaving the
    handle (``close()`` or the end of a ``with`` block) without acknowledging
    or abandoning it returns the entry to the queue, so a worker that fails
    mid-job never loses it.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        schema: StorageSchema,
        id: int,
        job_id: str,
        queue: str,
    ):
        self._session_factory = session_factory
        self._schema = schema

        self.id = id
        self.job_id = require_text(job_id, "job_id")
        self.queue = require_text(queue, "queue")

        self._removed_from_queue = False
        self._requeued = False
        self._disposed = False
        self._metrics = get_metrics()

    @property
    def is_finalized(self) -> bool:
        """True once the entry was acknowledged or abandoned."""
        return self._removed_from_queue or self._requeued

    def acknowledge(self) -> None:
        """Delete the queue entry: the job was processed."""
        if self.is_finalized:
            return

        table = self._schema.job_queue
        with session_scope(self._session_factory) as session:
            session.execute(delete(table).where(table.c.id == self.id))

        self._removed_from_queue = True
        self._metrics.record_job_acknowledged(self.queue)
        logger.debug(
            "Removed job from queue",
            extra={"job_id": self.job_id, "queue": self.queue},
        )

    def abandon(self) -> None:
        """Make the entry visible to other dequeuers immediately."""
        if self.is_finalized:
            return

        table = self._schema.job_queue
        with session_scope(self._session_factory) as session:
            session.execute(
                update(table).where(table.c.id == self.id).values(fetched_at=None)
            )

        self._requeued = True
        self._metrics.record_job_requeued(self.queue)
        logger.info(
            "Returned job to queue",
            extra={"job_id": self.job_id, "queue": self.queue},
        )

    requeue = abandon

    def close(self) -> None:
        if self._disposed:
            return

        if not self.is_finalized:
            self.abandon()

        self._disposed = True

    def __enter__(self) -> "FetchedJob":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"FetchedJob(id={self.id}, job_id={self.job_id}, queue={self.queue})"
