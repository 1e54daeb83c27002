"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    start_http_server,
)

from jobstore.constants import (
    METRIC_BATCH_COMMITS,
    METRIC_DEQUEUE_CONFLICTS,
    METRIC_EXPIRED_REMOVED,
    METRIC_JOBS_ACKNOWLEDGED,
    METRIC_JOBS_FETCHED,
    METRIC_JOBS_REQUEUED,
    METRIC_LOCK_TIMEOUTS,
    METRIC_LOCK_WAIT,
    METRIC_LOCKS_ACQUIRED,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the storage layer.

    Collects metrics for:
    - Queue claims, acknowledgements and requeues
    - Transient conflicts retried while claiming
    - Distributed lock acquisition
    - Write batch commits
    - Expired records removed by the sweeper
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_fetched = Counter(
            METRIC_JOBS_FETCHED,
            "Total number of queue entries claimed",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_acknowledged = Counter(
            METRIC_JOBS_ACKNOWLEDGED,
            "Total number of claimed entries removed from the queue",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_requeued = Counter(
            METRIC_JOBS_REQUEUED,
            "Total number of claimed entries returned to the queue",
            ["queue"],
            registry=self._registry,
        )

        self.dequeue_conflicts = Counter(
            METRIC_DEQUEUE_CONFLICTS,
            "Total number of transient conflicts retried while claiming",
            registry=self._registry,
        )

        self.locks_acquired = Counter(
            METRIC_LOCKS_ACQUIRED,
            "Total number of distributed locks acquired",
            registry=self._registry,
        )

        self.lock_timeouts = Counter(
            METRIC_LOCK_TIMEOUTS,
            "Total number of distributed lock acquisitions that timed out",
            registry=self._registry,
        )

        self.lock_wait = Histogram(
            METRIC_LOCK_WAIT,
            "Time spent acquiring a distributed lock in seconds",
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )

        self.batch_commits = Counter(
            METRIC_BATCH_COMMITS,
            "Total number of write batch commits",
            ["status"],
            registry=self._registry,
        )

        self.expired_removed = Counter(
            METRIC_EXPIRED_REMOVED,
            "Total number of expired records removed",
            ["table"],
            registry=self._registry,
        )

    def record_job_fetched(self, queue: str) -> None:
        """Record a queue claim."""
        self.jobs_fetched.labels(queue=queue).inc()

    def record_job_acknowledged(self, queue: str) -> None:
        self.jobs_acknowledged.labels(queue=queue).inc()

    def record_job_requeued(self, queue: str) -> None:
        self.jobs_requeued.labels(queue=queue).inc()

    def record_dequeue_conflict(self) -> None:
        self.dequeue_conflicts.inc()

    def record_lock_acquired(self, wait_seconds: float) -> None:
        """Record a successful lock acquisition and how long it took."""
        self.locks_acquired.inc()
        self.lock_wait.observe(wait_seconds)

    def record_lock_timeout(self) -> None:
        self.lock_timeouts.inc()

    def record_batch_commit(self, status: str) -> None:
        self.batch_commits.labels(status=status).inc()

    def record_expired_removed(self, table: str, count: int) -> None:
        self.expired_removed.labels(table=table).inc(count)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: When given, also expose metrics over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port is not None:
        start_http_server(port)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
