"""
Explicit schema bootstrap.

Hosts call ``install_schema`` once, before constructing any storage
component. The storage core never installs the schema on its own.
"""

import logging

from sqlalchemy import Engine, insert, select

from jobstore.constants import SCHEMA_VERSION
from jobstore.db.schema import StorageSchema

logger = logging.getLogger(__name__)


def install_schema(engine: Engine, schema: StorageSchema) -> int:
    """
    Create the storage tables and record the schema version.

    Safe to call repeatedly: existing tables are left untouched and the
    version marker is only written once.

    Returns:
        The installed schema version.
    """
    schema.metadata.create_all(engine)

    with engine.begin() as conn:
        installed = conn.execute(
            select(schema.schema_version.c.version).where(
                schema.schema_version.c.version == SCHEMA_VERSION
            )
        ).scalar_one_or_none()

        if installed is None:
            conn.execute(insert(schema.schema_version).values(version=SCHEMA_VERSION))
            logger.info(
                "Installed storage schema",
                extra={"prefix": schema.prefix, "version": SCHEMA_VERSION},
            )

    return SCHEMA_VERSION


def drop_schema(engine: Engine, schema: StorageSchema) -> None:
    """Drop every storage table for the schema's prefix."""
    schema.metadata.drop_all(engine)
    logger.info("Dropped storage schema", extra={"prefix": schema.prefix})
