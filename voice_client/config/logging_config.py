"""
Configure logging for the client.

Log records go to stderr and to a rotating file, so the conversation that
run.py prints on stdout stays readable. The websockets library logs its own
frames; it is held at WARNING unless the client runs at DEBUG.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from voice_client.config.constants import LOGGER_NAME

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_DIR = Path("logs")
LOG_FILE_NAME = "voice_client.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

TRANSPORT_LOGGER_NAME = "websockets"


def configure_logging(
    level: Optional[str] = None,
    log_dir: Optional[Union[str, Path]] = LOG_DIR,
) -> logging.Logger:
    """
    Configure the client logger.

    Args:
        level: Level name overriding the LOG_LEVEL environment variable
        log_dir: Directory for the rotating log file (None for console only)

    Returns:
        logging.Logger: The configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    logger.setLevel(log_level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is not None:
        log_path = Path(log_dir)
        try:
            log_path.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path / LOG_FILE_NAME,
                maxBytes=MAX_LOG_SIZE,
                backupCount=BACKUP_COUNT,
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not set up file logging in {log_path}: {e}")

    logging.getLogger(TRANSPORT_LOGGER_NAME).setLevel(
        logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    )

    logger.propagate = False

    logger.debug(f"Logging configured at {logging.getLevelName(log_level)}")
    return logger
