# services/logger_config.py
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'

# Chatty at INFO: one line per HTTP connection / SQL statement
NOISY_LOGGERS = ("urllib3", "sqlalchemy.engine", "aiosqlite")


def setup_logging(level: Optional[str] = None, log_file_path: Optional[str] = None) -> logging.Logger:
    """
    Configure the RAG core logger: rotating file (5MB x 5) plus console.

    Safe to call again; existing handlers are replaced. If the log file
    cannot be opened, logging continues on the console only.
    """
    logger = logging.getLogger(settings.LOGGER_NAME)
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel((level or settings.LOG_LEVEL).upper())
    formatter = logging.Formatter(LOG_FORMAT)
    log_file_path = log_file_path or settings.LOG_FILE_PATH

    try:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_file_path, maxBytes=5 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        print(f"Error setting up file logger at {log_file_path}: {e}")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging configured (level={logging.getLevelName(logger.level)}, file={log_file_path})")
    return logger
