"""
Logging for the netdot2cacti cron job.

Every module logs through a child of the single "netdot2cacti" logger, so
one setup_logger() call in the CLI configures the whole run:

- console output goes to stdout, which cron mails to the operator
- file output goes to logs/netdot2cacti.log, rotated at 5MB with 3 backups
- running setup again (e.g. for --debug) only changes the level of the
  handlers already attached, so a run never logs a line twice
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


ROOT_LOGGER = "netdot2cacti"
LOG_FILE = "netdot2cacti.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = ROOT_LOGGER,
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    log_to_file: bool = True,
    log_to_console: bool = True,
) -> logging.Logger:
    """
    Attach the console and file handlers to the job's logger.

    Args:
        name: Logger name; children of it share the handlers.
        level: Logging level for the logger and all of its handlers.
        log_dir: Directory for the log file. Defaults to './logs'.
        log_to_file: Whether to log to the rotating file.
        log_to_console: Whether to log to stdout.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_to_file:
        log_dir = log_dir or Path("./logs")
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger under the job's logger tree.

    Short names are nested under it, so get_logger("db") and
    get_logger("netdot2cacti.db") return the same logger.
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
