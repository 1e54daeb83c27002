"""
Expiration module.
Contains the expired-record sweeper and its standalone runner.
"""

from jobstore.expiration.sweeper import ExpirationSweeper

__all__ = ["ExpirationSweeper"]
