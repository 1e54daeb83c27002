"""
Standalone runner for the expiration sweeper.

Calls the sweeper repeatedly until SIGTERM/SIGINT cancels it.
"""

import logging
import signal
from datetime import timedelta
from typing import Any

from jobstore.cancellation import CancellationToken
from jobstore.config import get_settings
from jobstore.db.connection import get_engine
from jobstore.errors import OperationCancelled
from jobstore.expiration.sweeper import ExpirationSweeper
from jobstore.observability.logging import bind_context, setup_logging
from jobstore.observability.metrics import setup_metrics
from jobstore.observability.tracing import instrument_sqlalchemy, setup_tracing
from jobstore.storage.storage import JobStorage

logger = logging.getLogger(__name__)


def run_sweeper(sweeper: ExpirationSweeper, cancellation: CancellationToken) -> None:
    """
    Drive the sweeper until cancelled.

    Unexpected errors are logged and the next pass waits out the check
    interval before retrying.
    """
    logger.info(
        f"Expiration sweeper starting with interval {sweeper.check_interval}",
    )

    while not cancellation.is_cancelled:
        try:
            sweeper.execute(cancellation)
        except OperationCancelled:
            break
        except Exception as e:
            logger.exception(f"Error in expiration sweeper loop: {e}")
            cancellation.wait(sweeper.check_interval)

    logger.info("Expiration sweeper stopped")


def run() -> None:
    """Run the expiration sweeper process."""
    settings = get_settings()
    setup_logging(settings)
    setup_metrics(settings.prometheus_port)
    setup_tracing(settings)
    bind_context(component="expiration-sweeper")

    engine = get_engine(settings)
    instrument_sqlalchemy(engine)
    storage = JobStorage(engine, settings.storage_options())
    storage.write_options_to_log()

    sweeper = ExpirationSweeper(
        storage.session_factory,
        storage.schema,
        storage.options,
        check_interval=timedelta(seconds=settings.expiration_check_interval_seconds),
    )

    cancellation = CancellationToken()

    def _stop(signum: int, frame: Any) -> None:
        logger.info("Expiration sweeper stopping", extra={"signal": signum})
        cancellation.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _stop)

    try:
        run_sweeper(sweeper, cancellation)
    finally:
        engine.dispose()


if __name__ == "__main__":
    run()
