"""
Queue module.
Contains the persistent job queue, claimed-job handle, and queue providers.
"""

from jobstore.queue.fetched_job import FetchedJob
from jobstore.queue.job_queue import SqlJobQueue
from jobstore.queue.providers import (
    ClaimedJob,
    JobQueueProvider,
    PersistentJobQueue,
    QueueProviderRegistry,
    SqlJobQueueProvider,
)

__all__ = [
    "SqlJobQueue",
    "FetchedJob",
    "ClaimedJob",
    "PersistentJobQueue",
    "JobQueueProvider",
    "SqlJobQueueProvider",
    "QueueProviderRegistry",
]
