"""
logger_config.py
----------------

Logging setup for cephcrypto.

- rotating log files (5 MB, 3 backups) under ``config.LOG_DIR``
- coloured console output through colorlog
- ANSI colour codes stripped from the files
- one logger per concern: keys, envelope, password, store
"""

import logging
import os
import re
from logging.handlers import RotatingFileHandler

import colorlog

from . import config

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class NoColorFormatter(logging.Formatter):
    """Strips ANSI colour codes for file output."""
    def format(self, record):
        msg = super().format(record)
        return re.sub(r"\x1b\[[0-9;]*m", "", msg)


color_formatter = colorlog.ColoredFormatter(
    "%(log_color)s" + LOG_FORMAT,
    datefmt=DATE_FORMAT,
    log_colors={
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    },
)


def setup_logger(name: str, filename: str, level=None) -> logging.Logger:
    """
    Creates a logger writing to a rotating file and to the console.
    Calling it again for the same name returns the configured logger.

    Args:
        name (str): Logical logger name.
        filename (str): Log file name inside ``config.LOG_DIR``.
        level (int|str): Minimum level, ``config.LOG_LEVEL`` by default.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = level or config.LOG_LEVEL
    os.makedirs(config.LOG_DIR, exist_ok=True)

    file_handler = RotatingFileHandler(
        os.path.join(config.LOG_DIR, filename),
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
        delay=True,
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(NoColorFormatter(LOG_FORMAT, DATE_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(color_formatter)

    logger.setLevel(level)
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    logger.propagate = False
    return logger


keys_logger = setup_logger("cephcrypto.keys", "keys.log")
envelope_logger = setup_logger("cephcrypto.envelope", "envelope.log")
password_logger = setup_logger("cephcrypto.password", "password.log")
store_logger = setup_logger("cephcrypto.store", "store.log")
