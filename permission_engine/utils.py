"""
Shared helpers.
"""
import logging

from permission_engine.core import config

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger.

    The root logger is configured once from LOG_LEVEL; later calls reuse it.

    Usage:
        log = get_logger(__name__)
        log.info("Resolving permissions for %s", user_id)
    """
    logging.basicConfig(level=config.LOG_LEVEL, format=_LOG_FORMAT)
    return logging.getLogger(name)
