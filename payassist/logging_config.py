"""
Logging Configuration
Sets up file-based logging with separate log files for different components
"""

import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

from payassist import config

# Log file names per component logger
LOG_FILES = {
    "payassist.api": "app.log",
    "payassist.orchestrator": "orchestrator.log",
    "agent": "agent.log",
    "payassist.engine": "engine.log",
    "payassist.services": "services.log",
    "payassist.tools": "tools.log",
    "gemini_llm_client": "gemini_client.log",
}

# Log format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Max log file size (10MB)
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5


def setup_file_logger(name: str, log_file: Path, level: int = logging.INFO) -> logging.Logger:
    """
    Set up a file-based logger with rotation

    Args:
        name: Logger name
        log_file: Path to log file
        level: Logging level

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    # Only warnings and errors reach the console
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    logger.propagate = False

    return logger


def setup_logging(log_dir: Optional[str] = None, log_level: Optional[str] = None) -> Path:
    """
    Set up all component loggers. Returns the directory holding the log files.
    """
    directory = Path(log_dir or config.LOG_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, (log_level or config.LOG_LEVEL).upper(), logging.INFO)

    for name, filename in LOG_FILES.items():
        setup_file_logger(name, directory / filename, level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    logging.getLogger("payassist.api").info("Logging configured. Log files in: %s", directory)
    return directory