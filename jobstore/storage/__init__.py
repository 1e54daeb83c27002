"""
Storage module.
Contains the storage facade and the connection handed to job servers.
"""

from jobstore.storage.connection import StorageConnection
from jobstore.storage.storage import JobStorage

__all__ = ["JobStorage", "StorageConnection"]
