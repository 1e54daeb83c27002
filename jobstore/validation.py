"""
Argument checks shared by the storage components.

Every check runs before the store is touched and raises
``InvalidArgumentError``.
"""

from collections.abc import Iterable
from datetime import timedelta

from jobstore.errors import InvalidArgumentError


def require_text(value: str | None, name: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidArgumentError(f"'{name}' must be a non-empty string")
    return str(value)


def parse_job_id(job_id: str | int | None) -> int:
    """Convert an external job identifier into the stored integer key."""
    if job_id is None or (isinstance(job_id, str) and not job_id.strip()):
        raise InvalidArgumentError("'job_id' must be a non-empty identifier")
    try:
        return int(job_id)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"'job_id' must be an integer identifier, got {job_id!r}") from None


def require_queues(queues: Iterable[str] | None) -> list[str]:
    if queues is None:
        raise InvalidArgumentError("'queues' is required")
    if isinstance(queues, str):
        queues = [queues]
    result = [require_text(queue, "queues") for queue in queues]
    if not result:
        raise InvalidArgumentError("Queue array must be non-empty.")
    return result


def require_non_negative(value: timedelta, name: str) -> timedelta:
    if value < timedelta(0):
        raise InvalidArgumentError(f"The '{name}' value must be positive.")
    return value
