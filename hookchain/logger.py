"""
Logging setup for hookchain.

All modules log through the shared ``logger`` instance exported here.
Call ``setup_logging()`` once from an entry point to attach a handler.
"""

import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

logger = logging.getLogger("hookchain")


def setup_logging(level: Union[int, str] = logging.INFO, stream: Optional[object] = None) -> logging.Logger:
    """
    Configure the hookchain logger.

    Args:
        level: Log level name or number
        stream: Stream for the handler (default: stderr)

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    # Replace handlers we installed earlier so repeated calls don't duplicate output
    for handler in list(logger.handlers):
        if getattr(handler, "_hookchain", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._hookchain = True
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
