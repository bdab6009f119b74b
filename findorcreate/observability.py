"""Logfire observability initialization and instrumentation."""

import logging

import logfire

from findorcreate import __version__
from findorcreate.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> bool:
    """
    Initialize Logfire for find_or_create spans and MongoDB calls.

    Call once at application startup, after init_beanie().

    Configures:
    - Logfire cloud export (service "findorcreate")
    - PyMongo instrumentation (find_one / save round trips)
    - Python logging bridge (findorcreate.* loggers)

    Args:
        settings: Settings containing the Logfire token

    Returns:
        True if Logfire was configured, False otherwise.
    """
    logging.getLogger("findorcreate").setLevel(settings.log_level)

    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="findorcreate",
            service_version=__version__,
            environment=settings.environment,
        )

        try:
            logfire.instrument_pymongo()
        except Exception as instrument_error:
            logger.debug(f"PyMongo instrumentation skipped: {instrument_error}")

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False
