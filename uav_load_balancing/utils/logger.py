"""
Logging utilities for load balancing runs.

The library modules only call ``logging.getLogger(__name__)``; handlers are
attached by applications (the CLI, experiment scripts) through
``setup_logger``.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional

LOG_FORMAT = '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(
    name: str = "uav_load_balancing",
    log_dir: Optional[str] = None,
    level: int = logging.INFO,
    console: bool = True,
    file: bool = False
) -> logging.Logger:
    """
    Set up a logger with console and file handlers.

    Calling it again for the same name replaces the handlers, so a later
    call can change the level or the destinations.

    Args:
        name: Logger name (the package name configures every module logger)
        log_dir: Directory for log files (default: results/logs)
        level: Logging level
        console: Whether to log to the console (stderr, stdout is left to results)
        file: Whether to log to file

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if file:
        if log_dir is None:
            log_dir = "results/logs"
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"{name}_{timestamp}.log"

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger by name.

    Loggers configured through ``setup_logger`` come back with their
    handlers; any other name gets a plain ``logging.getLogger`` logger that
    propagates to its configured parent.
    """
    return logging.getLogger(name)
