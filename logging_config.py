"""
Centralized logging configuration for Notchtify
Console + rotating file handlers, configured once by the entry point
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

if "__compiled__" in globals() or getattr(sys, 'frozen', False):
    ROOT_DIR = Path(sys.argv[0]).parent
else:
    ROOT_DIR = Path(__file__).parent

# Logs directory can be moved for read-only installs
LOGS_DIR = Path(os.getenv("NOTCHTIFY_LOGS_DIR", str(ROOT_DIR / "logs")))

# Define log formats
CONSOLE_FORMAT = '(%(filename)s:%(lineno)d) %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'

# setup_logging() is a no-op after the first call
_logging_initialized = False


def setup_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    console: bool = True,
    log_file: Optional[str] = None,
    max_bytes: int = 1 * 1024 * 1024,
    backup_count: int = 10,
) -> None:
    """
    Configure the root logger with a console handler and a rotating file handler.

    Args:
        console_level: Logging level for console output (default: INFO)
        file_level: Logging level for file output (default: DEBUG)
        console: Whether to enable console logging (default: True)
        log_file: Optional custom log file name
        max_bytes: Rotate the log file after this many bytes
        backup_count: Number of rotated files to keep
    """
    global _logging_initialized
    if _logging_initialized:
        return

    if not log_file:
        log_file = "notchtify.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels
    root_logger.handlers = []

    # Console handler (simpler format)
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, console_level.upper()))
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root_logger.addHandler(console_handler)

    # File handler (detailed format)
    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            LOGS_DIR / log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(getattr(logging, file_level.upper()))
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)
    except OSError as e:
        # Console logging still works without a writable logs directory
        root_logger.warning(f"File logging disabled ({LOGS_DIR}): {e}")

    # Quiet third-party libraries
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('spotipy').setLevel(logging.WARNING)

    _logging_initialized = True

    root_logger.info(f"Logging initialized - Console: {console_level}, File: {file_level}")
    root_logger.debug(f"Log file: {LOGS_DIR / log_file}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    # setup_logging() must be called explicitly by the entry point.
    return logging.getLogger(name)
