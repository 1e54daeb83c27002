"""
Type definitions for the storage layer.
"""

from jobstore.types.job import JobData, JobState, StateData
from jobstore.types.server import ServerContext, ServerData

__all__ = [
    # Job types
    "JobState",
    "JobData",
    "StateData",
    # Server types
    "ServerContext",
    "ServerData",
]
