"""
Job storage facade.
"""

import logging

from sqlalchemy import Engine

from jobstore.config import StorageOptions
from jobstore.db.connection import create_session_factory
from jobstore.db.schema import StorageSchema
from jobstore.expiration.sweeper import ExpirationSweeper
from jobstore.queue.providers import QueueProviderRegistry, SqlJobQueueProvider
from jobstore.storage.connection import StorageConnection

logger = logging.getLogger(__name__)


class JobStorage:
    """
    Wires the storage components to one engine and one set of options.

    The schema must already be installed (see ``install_schema``); this
    class never creates tables.
    """

    def __init__(self, engine: Engine, options: StorageOptions | None = None):
        """
        Initialize the storage.

        Args:
            engine: Engine for the shared database.
            options: Storage options. Defaults to ``StorageOptions()``.
        """
        self.engine = engine
        self.options = options or StorageOptions()
        self.schema = StorageSchema(self.options.prefix)
        self.session_factory = create_session_factory(engine)
        self.queue_providers = QueueProviderRegistry(
            SqlJobQueueProvider(self.session_factory, self.schema, self.options)
        )

    def get_connection(self) -> StorageConnection:
        return StorageConnection(
            self.session_factory,
            self.schema,
            self.options,
            self.queue_providers,
        )

    def get_components(self) -> list[ExpirationSweeper]:
        """Background components the host should run periodically."""
        return [ExpirationSweeper(self.session_factory, self.schema, self.options)]

    def write_options_to_log(self) -> None:
        logger.info(
            "Using the following options for SQL job storage",
            extra={
                "prefix": self.options.prefix,
                "queue_poll_interval": str(self.options.queue_poll_interval),
                "invisibility_timeout": str(self.options.invisibility_timeout),
            },
        )

    def __str__(self) -> str:
        return f"SQL job storage: {self.engine.url.render_as_string(hide_password=True)}"
