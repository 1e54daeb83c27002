"""
Server announcement types.
"""

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel


@dataclass
class ServerContext:
    """What a processing server tells the storage when it announces itself."""

    worker_count: int
    queues: list[str] = field(default_factory=list)


class ServerData(BaseModel):
    """Serialized payload stored with each server row."""

    worker_count: int
    queues: list[str]
    started_at: datetime
