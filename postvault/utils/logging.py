"""Logging setup shared by the CLI and scripts."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from postvault.utils.config import LOG_FILE

LOGGER_NAME = "postvault"

# Libraries that log every request URL at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite")

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
CONSOLE_FORMAT = "%(levelname)-8s | %(message)s"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    verbose: bool = False,
) -> logging.Logger:
    """
    Configure the ``postvault`` logger tree.

    Console output goes to stdout at ``level`` (DEBUG with ``verbose``);
    the rotating log file always receives DEBUG records. Calling this
    again only updates levels.

    Args:
        level: Console logging level
        log_file: Log file path (default: config.LOG_FILE)
        verbose: Print DEBUG records to the console

    Returns:
        The ``postvault`` logger
    """
    console_level = logging.DEBUG if verbose else level
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if logger.handlers:
        for handler in logger.handlers:
            if not isinstance(handler, RotatingFileHandler):
                handler.setLevel(console_level)
        return logger

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    log_file = log_file or LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Module logger under the ``postvault`` tree (the root app logger when name is None)."""
    return logging.getLogger(name or LOGGER_NAME)
