"""
Logging Configuration
=====================

Central logging setup shared by the pipeline scripts and the
``metabolism`` package. Scripts call ``setup_logging`` once; modules
obtain loggers through ``get_logger(__name__)``.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(log_level="INFO", enable_file_logging=False, log_dir=None):
    """
    Configure the root logger with a console handler and an optional
    rotating file handler.

    Args:
        log_level: Level name ("DEBUG", "INFO", ...) or logging constant
        enable_file_logging: Also write to ``<log_dir>/pecos_metabolism.log``
        log_dir: Directory for the log file (defaults to config.LOG_DIR)
    """
    global _configured

    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = log_level

    root = logging.getLogger()
    root.setLevel(level)

    if _configured:
        for handler in root.handlers:
            handler.setLevel(level)
        return root

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if enable_file_logging:
        log_dir = log_dir or config.LOG_DIR
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "pecos_metabolism.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # urllib3 retries are reported by our own retry loop
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    _configured = True
    return root


def get_logger(name):
    """Return a named logger."""
    return logging.getLogger(name)
