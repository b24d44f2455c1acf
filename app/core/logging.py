"""Logging for the ``dockit`` namespace.

Every module logs through a child of ``dockit`` obtained with
``get_logger(__name__)``; ``setup_logging`` attaches the single stdout
handler those children share.
"""

import logging
import sys

ROOT_LOGGER = "dockit"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Install the stdout handler on the ``dockit`` logger and set its level.

    Safe to call more than once (the app module and test reloads both do);
    the handler is only attached the first time.

    Args:
        level: Level name such as ``DEBUG`` or ``WARNING``; unknown names fall
            back to INFO.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    # Our handler already writes; don't echo through the root handler too
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """``get_logger("app.services.settlement.ledger")`` -> ``dockit.app.services...``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
