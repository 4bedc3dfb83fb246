"""
Shared helpers for the searchbackup package.
"""

import logging
from typing import Optional, Union

logger = logging.getLogger("searchbackup")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    level: Union[int, str] = logging.INFO,
    log_format: str = LOG_FORMAT,
    handler: Optional[logging.Handler] = None,
) -> logging.Logger:
    """
    Configure the package logger for console use.

    Args:
        level: Logging level name or number
        log_format: Format string for the handler
        handler: Handler to attach; defaults to a stream handler on stderr

    Returns:
        The configured package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handler = handler or logging.StreamHandler()
    handler.setFormatter(logging.Formatter(log_format))

    logger.handlers = [handler]
    logger.setLevel(level)
    logger.propagate = False

    # The Azure SDK logs every HTTP request at INFO
    if level > logging.DEBUG:
        logging.getLogger("azure").setLevel(logging.WARNING)

    return logger
