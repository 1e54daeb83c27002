"""
SQLAlchemy Core schema for the storage tables.

Every table name is scoped by the configured prefix, so the schema is built
per prefix instead of being declared once at import time.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

from jobstore.constants import EXPIRING_TABLES, TableName


class StorageSchema:
    """
    Table definitions for one storage prefix.

    Key constraints:
    - (key, value) is unique in the set table, (key, field) in the hash table
    - (job_id, name) is unique in the job parameter table
    - lock.resource is the primary key: at most one row per locked resource
    - parameters, states and queue entries are deleted with their job
    """

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.metadata = MetaData()

        self.job = Table(
            self._name(TableName.JOB),
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("state_id", Integer, nullable=True),
            Column("state_name", String(20), nullable=True),
            Column("invocation_data", Text, nullable=False),
            Column("arguments", Text, nullable=False),
            Column("created_at", DateTime, nullable=False),
            Column("expire_at", DateTime, nullable=True, index=True),
        )

        self.job_parameter = Table(
            self._name(TableName.JOB_PARAMETER),
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column(
                "job_id",
                Integer,
                ForeignKey(f"{self.job.name}.id", ondelete="CASCADE"),
                nullable=False,
            ),
            Column("name", String(40), nullable=False),
            Column("value", Text, nullable=True),
            UniqueConstraint("job_id", "name", name=f"uq_{prefix}_job_parameter"),
        )

        self.job_queue = Table(
            self._name(TableName.JOB_QUEUE),
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column(
                "job_id",
                Integer,
                ForeignKey(f"{self.job.name}.id", ondelete="CASCADE"),
                nullable=False,
            ),
            Column("queue", String(50), nullable=False),
            Column("fetched_at", DateTime, nullable=True),
            Index(f"ix_{prefix}_job_queue_fetch", "queue", "fetched_at"),
        )

        self.state = Table(
            self._name(TableName.STATE),
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column(
                "job_id",
                Integer,
                ForeignKey(f"{self.job.name}.id", ondelete="CASCADE"),
                nullable=False,
                index=True,
            ),
            Column("name", String(20), nullable=False),
            Column("reason", String(100), nullable=True),
            Column("created_at", DateTime, nullable=False),
            Column("data", Text, nullable=True),
        )

        self.counter = Table(
            self._name(TableName.COUNTER),
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("key", String(100), nullable=False, index=True),
            Column("value", Integer, nullable=False),
            Column("expire_at", DateTime, nullable=True, index=True),
        )

        self.set = Table(
            self._name(TableName.SET),
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("key", String(100), nullable=False),
            Column("value", String(256), nullable=False),
            Column("score", Float, nullable=False, default=0.0),
            Column("expire_at", DateTime, nullable=True, index=True),
            UniqueConstraint("key", "value", name=f"uq_{prefix}_set_key_value"),
        )

        self.list = Table(
            self._name(TableName.LIST),
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("key", String(100), nullable=False, index=True),
            Column("value", Text, nullable=True),
            Column("expire_at", DateTime, nullable=True, index=True),
        )

        self.hash = Table(
            self._name(TableName.HASH),
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("key", String(100), nullable=False),
            Column("field", String(100), nullable=False),
            Column("value", Text, nullable=True),
            Column("expire_at", DateTime, nullable=True, index=True),
            UniqueConstraint("key", "field", name=f"uq_{prefix}_hash_key_field"),
        )

        self.server = Table(
            self._name(TableName.SERVER),
            self.metadata,
            Column("id", String(100), primary_key=True),
            Column("data", Text, nullable=True),
            Column("last_heartbeat", DateTime, nullable=False),
        )

        self.lock = Table(
            self._name(TableName.LOCK),
            self.metadata,
            Column("resource", String(100), primary_key=True),
        )

        self.schema_version = Table(
            self._name(TableName.SCHEMA),
            self.metadata,
            Column("version", Integer, primary_key=True, autoincrement=False),
        )

    def _name(self, table: TableName) -> str:
        return f"{self.prefix}_{table.value}"

    def table(self, name: TableName) -> Table:
        """Look up a table by its logical name."""
        return self.metadata.tables[self._name(name)]

    @property
    def expiring_tables(self) -> list[Table]:
        """Tables swept by the expiration sweeper, in sweep order."""
        return [self.table(name) for name in EXPIRING_TABLES]

    def __repr__(self) -> str:
        return f"StorageSchema(prefix={self.prefix!r})"
