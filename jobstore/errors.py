"""
Exception taxonomy for the storage layer.

Store and connectivity errors raised by SQLAlchemy are not wrapped; they
propagate unchanged.
"""


class JobStoreError(Exception):
    """Base class for errors raised by this package."""


class InvalidArgumentError(JobStoreError, ValueError):
    """A required identifier or argument was missing or malformed."""


class DistributedLockError(JobStoreError):
    """Base class for distributed lock failures."""

    def __init__(self, resource: str, message: str):
        super().__init__(message)
        self.resource = resource


class LockTimeoutError(DistributedLockError):
    """The lock could not be acquired within the requested time."""

    def __init__(self, resource: str):
        super().__init__(
            resource,
            f"Could not place a lock on the resource '{resource}': Lock timeout.",
        )


class LockInconsistencyError(DistributedLockError):
    """Release found no lock row for the resource."""

    def __init__(self, resource: str):
        super().__init__(
            resource,
            f"Could not release a lock on the resource '{resource}'. Lock does not exist.",
        )


class QueueProviderError(JobStoreError):
    """Queue provider registration or resolution is ambiguous."""


class OperationCancelled(Exception):
    """
    A blocking wait was interrupted by its cancellation token.

    Deliberately not a ``JobStoreError``: cancellation is an outcome the
    caller asked for, not a failure.
    """
