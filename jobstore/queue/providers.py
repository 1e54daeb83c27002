"""
Queue providers and the registry mapping queue names to them.
"""

from collections.abc import Iterable, Sequence
from typing import Protocol

from sqlalchemy.orm import Session, sessionmaker

from jobstore.cancellation import CancellationToken
from jobstore.config import StorageOptions
from jobstore.db.schema import StorageSchema
from jobstore.errors import InvalidArgumentError, QueueProviderError
from jobstore.queue.job_queue import SqlJobQueue
from jobstore.validation import require_queues


class ClaimedJob(Protocol):
    """What a dequeue hands back to the worker."""

    job_id: str
    queue: str

    def acknowledge(self) -> None: ...

    def abandon(self) -> None: ...

    def close(self) -> None: ...


class PersistentJobQueue(Protocol):
    """Contract every queue implementation fulfils."""

    def enqueue(self, session: Session, queue: str, job_id: str) -> None: ...

    def dequeue(
        self,
        queues: Sequence[str],
        cancellation: CancellationToken,
    ) -> ClaimedJob: ...


class JobQueueProvider(Protocol):
    def get_job_queue(self) -> PersistentJobQueue: ...


class SqlJobQueueProvider:
    """Default provider: queues stored in the job queue table."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        schema: StorageSchema,
        options: StorageOptions,
    ):
        self.options = options
        self._queue = SqlJobQueue(session_factory, schema, options)

    def get_job_queue(self) -> SqlJobQueue:
        return self._queue


class QueueProviderRegistry:
    """
    Explicit mapping from queue name to the provider that owns it.

    Queues that were never registered belong to the default provider. A queue
    can only be bound to one provider; conflicting registrations fail
    immediately instead of at dequeue or commit time.
    """

    def __init__(self, default_provider: JobQueueProvider):
        if default_provider is None:
            raise InvalidArgumentError("'default_provider' is required")
        self._default = default_provider
        self._providers: dict[str, JobQueueProvider] = {}

    @property
    def default_provider(self) -> JobQueueProvider:
        return self._default

    def add(self, provider: JobQueueProvider, queues: Iterable[str]) -> None:
        """
        Bind ``queues`` to ``provider``.

        Raises:
            QueueProviderError: If any queue is already bound to another provider.
        """
        if provider is None:
            raise InvalidArgumentError("'provider' is required")
        queues = require_queues(queues)

        taken = [
            queue for queue in queues
            if queue in self._providers and self._providers[queue] is not provider
        ]
        if taken:
            raise QueueProviderError(
                f"Queues already bound to another provider: {', '.join(taken)}"
            )

        for queue in queues:
            self._providers[queue] = provider

    def get_provider(self, queue: str) -> JobQueueProvider:
        return self._providers.get(queue, self._default)

    def resolve(self, queues: Sequence[str]) -> JobQueueProvider:
        """
        Find the single provider serving every queue in ``queues``.

        Raises:
            QueueProviderError: If the queues are served by different providers.
        """
        queues = require_queues(queues)
        providers: list[JobQueueProvider] = []
        for queue in queues:
            provider = self.get_provider(queue)
            if not any(provider is known for known in providers):
                providers.append(provider)

        if len(providers) != 1:
            raise QueueProviderError(
                "Multiple provider instances registered for queues: "
                f"{', '.join(queues)}. Choose only one type of persistent queue "
                "per server instance."
            )
        return providers[0]

