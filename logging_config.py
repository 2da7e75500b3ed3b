"""
Centralized logging configuration for obs-now-playing
Handles all logging setup and provides convenience functions
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional
# from config import ROOT_DIR  <-- Not imported to avoid circular dependency

ROOT_DIR = Path(__file__).parent

# Logs live next to the scripts unless overridden (OBS installs scripts read-only on some distros)
LOGS_DIR = Path(os.getenv("NOW_PLAYING_LOGS_DIR", str(ROOT_DIR / "logs")))

# Define log formats
CONSOLE_FORMAT = '(%(filename)s:%(lineno)d) %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(filename)s:%(lineno)d - %(message)s'

# Track if logging has been initialized
_logging_initialized = False

def setup_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    console: bool = True,
    log_file: Optional[str] = None,
    log_polling: bool = True,
    max_bytes: int = 1 * 1024 * 1024,
    backup_count: int = 10,
) -> None:
    """
    Set up logging configuration with separate console and file handlers

    Args:
        console_level: Logging level for console output (default: INFO)
        file_level: Logging level for file output (default: DEBUG)
        console: Whether to enable console logging (default: True)
        log_file: Optional custom log file name
        log_polling: Whether the player poller logs every cycle (default: True)
        max_bytes: Rotate the log file after this many bytes
        backup_count: Number of rotated files to keep
    """
    global _logging_initialized
    if _logging_initialized:
        return

    if not log_file:
        log_file = "now_playing.log"

    # Get the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels

    # Clear any existing handlers
    root_logger.handlers = []

    # Console handler (simpler format)
    if console:
        console_handler = logging.StreamHandler(sys.stdout)  # OBS shows stdout in the script log
        console_handler.setLevel(getattr(logging, console_level.upper()))
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root_logger.addHandler(console_handler)

    # File handler (detailed format)
    log_path = LOGS_DIR / log_file
    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(getattr(logging, file_level.upper()))
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)
    except OSError as e:
        # Read-only install location: keep console logging only
        root_logger.warning(f"File logging disabled, cannot write {log_path}: {e}")
        log_path = None

    # Poller cycle chatter is DEBUG; silence it unless asked for
    if log_polling:
        logging.getLogger('now_playing.poller').setLevel(logging.DEBUG)
    else:
        logging.getLogger('now_playing.poller').setLevel(logging.INFO)

    _logging_initialized = True

    # Log initial setup message
    root_logger.info(f"Logging initialized - Console: {console_level}, File: {file_level}")
    root_logger.debug(f"Log file: {log_path}")

def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    # We do NOT call setup_logging() here to avoid circular deps.
    # It must be called explicitly by the entry point.
    return logging.getLogger(name)
