"""
Locking module.
Contains the table-backed distributed lock.
"""

from jobstore.locking.distributed_lock import DistributedLock

__all__ = ["DistributedLock"]
