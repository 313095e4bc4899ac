import logging
import os

LOG_FORMAT = '%(asctime)s %(levelname)s %(message)s'
LOG_LEVEL_ENV = "MOTION_CORE_LOG_LEVEL"


def get_logger(name: str) -> logging.Logger:
    """Return a named logger with a single stream handler attached.

    The level defaults to INFO and can be overridden through the
    ``MOTION_CORE_LOG_LEVEL`` environment variable (e.g. ``DEBUG``).
    """
    logger = logging.getLogger(name)
    if not logger.hasHandlers():
        handler = logging.StreamHandler()
        formatter = logging.Formatter(LOG_FORMAT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    return logger
