"""
Relational Job Storage

Durable, multi-process-safe primitives for background job processing built on a
shared relational database: a persistent work queue with crash recovery, a
distributed lock, an atomic write batch, and an expiration sweeper.
"""

__version__ = "1.0.0"
