"""
Application constants.
Centralized location for all constant values used across the storage layer.
"""

from enum import StrEnum


class TableName(StrEnum):
    """Logical table names; the physical name is ``<prefix>_<name>``."""

    JOB = "job"
    JOB_PARAMETER = "job_parameter"
    JOB_QUEUE = "job_queue"
    STATE = "state"
    COUNTER = "counter"
    SET = "set"
    LIST = "list"
    HASH = "hash"
    SERVER = "server"
    LOCK = "lock"
    SCHEMA = "schema"


# Tables holding rows with an expire_at column, in sweep order
EXPIRING_TABLES: tuple[TableName, ...] = (
    TableName.COUNTER,
    TableName.JOB,
    TableName.LIST,
    TableName.SET,
    TableName.HASH,
)

SCHEMA_VERSION = 1

# Default values
DEFAULT_PREFIX = "jobstore"
DEFAULT_QUEUE_POLL_INTERVAL_SECONDS = 15.0
DEFAULT_INVISIBILITY_TIMEOUT_SECONDS = 30 * 60.0
DEFAULT_EXPIRATION_CHECK_INTERVAL_SECONDS = 60 * 60.0

# Expiration sweeper
EXPIRATION_BATCH_SIZE = 1000
EXPIRATION_DELAY_BETWEEN_PASSES_SECONDS = 1.0

# Distributed lock
LOCK_MAX_RETRY_DELAY_SECONDS = 1.0
LOCK_RESOURCE_PREFIX = "jobstore:"

# Transient conflict retries for queue claims
DEFAULT_CONFLICT_RETRY_ATTEMPTS = 5
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})

# Metrics names
METRIC_JOBS_FETCHED = "jobstore_jobs_fetched_total"
METRIC_JOBS_ACKNOWLEDGED = "jobstore_jobs_acknowledged_total"
METRIC_JOBS_REQUEUED = "jobstore_jobs_requeued_total"
METRIC_DEQUEUE_CONFLICTS = "jobstore_dequeue_conflicts_total"
METRIC_LOCKS_ACQUIRED = "jobstore_locks_acquired_total"
METRIC_LOCK_TIMEOUTS = "jobstore_lock_timeouts_total"
METRIC_LOCK_WAIT = "jobstore_lock_wait_seconds"
METRIC_BATCH_COMMITS = "jobstore_write_batch_commits_total"
METRIC_EXPIRED_REMOVED = "jobstore_expired_records_removed_total"

# Trace span names
SPAN_DEQUEUE = "dequeue"
SPAN_COMMIT_BATCH = "commit_write_batch"
SPAN_SWEEP = "sweep_expired"
