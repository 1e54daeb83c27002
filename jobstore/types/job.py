"""
Job-related type definitions.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel


@dataclass(frozen=True)
class JobState:
    """
    A state transition recorded for a job.

    ``data`` is stored as a JSON object next to the state name and reason.
    """

    name: str
    reason: str | None = None
    data: dict[str, str] = field(default_factory=dict)

    def serialize_data(self) -> str:
        return json.dumps(self.data)


class JobData(BaseModel):
    """Stored job record as seen by the host framework."""

    job_id: str
    invocation_data: str
    arguments: str
    state_name: str | None = None
    created_at: datetime
    expire_at: datetime | None = None


class StateData(BaseModel):
    """The current state of a job."""

    name: str
    reason: str | None = None
    data: dict[str, str]

    @classmethod
    def from_row(cls, name: str, reason: str | None, data: str | None) -> "StateData":
        """Build from stored state columns."""
        return cls(name=name, reason=reason, data=json.loads(data) if data else {})
