"""
Transaction module.
Contains the atomic write batch.
"""

from jobstore.transaction.write_batch import WriteBatch

__all__ = ["WriteBatch"]
