"""
logging_config.py - Package Logger Setup
========================================
Every module logs through logging.getLogger(__name__), which puts it under
the "steadyflow" namespace. Nothing is printed until setup_logging() (or
the application's own logging config) attaches a handler.
"""

import logging
import sys
from typing import Optional

LOGGER_NAME = "steadyflow"


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the "steadyflow" logger.

    Args:
        level    : Logging level (e.g. logging.DEBUG for per-step telemetry)
        log_file : Optional path; logs are also written there.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Re-running setup must not stack duplicate handlers
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging initialized.")
    return logger
