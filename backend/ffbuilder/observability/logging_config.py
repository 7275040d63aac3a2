"""
Logging setup for the service.

Console output plus two files under the log directory:
- combined.log: everything at the configured level
- error.log: ERROR and above
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

LOGGER_NAME = "ffbuilder"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

COMBINED_LOG = "combined.log"
ERROR_LOG = "error.log"


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configure the package logger.

    Replaces handlers installed by a previous call, so it is safe to call
    more than once (tests, reloads).

    Args:
        level: Log level name
        log_dir: Directory for log files; None disables file logging

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: List[logging.Handler] = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handlers.append(console)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)

        combined = logging.FileHandler(log_dir / COMBINED_LOG, encoding="utf-8")
        combined.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(combined)

        errors = logging.FileHandler(log_dir / ERROR_LOG, encoding="utf-8")
        errors.setLevel(logging.ERROR)
        errors.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(errors)

    for handler in handlers:
        logger.addHandler(handler)

    return logger
