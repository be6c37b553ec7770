"""Centralized logging configuration for tasklog."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logging(
    log_file_prefix: str = "tasklog",
    log_dir: Path | None = Path("./logs"),
    level: str = "INFO",
) -> logging.Logger:
    """
    Configure logging for the application.

    Sets up console logging and, when ``log_dir`` is given, a rotating log
    file keeping at most 4 previous files. Only configures if not already
    configured to avoid duplicate handlers.

    Args:
        log_file_prefix: Prefix for the log file name (default: "tasklog")
        log_dir: Directory for the log file, or None for console only
        level: Log level name applied to the root logger and handlers

    Returns:
        Logger instance for the calling module
    """
    root_logger = logging.getLogger()

    # Only configure if not already configured (avoid duplicate handlers)
    if root_logger.handlers:
        return logging.getLogger(__name__)

    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Console goes to stderr so command output on stdout stays clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / f"{log_file_prefix}.log",
            mode="a",
            maxBytes=5 * 1024 * 1024,
            backupCount=4,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(log_level)

    return logging.getLogger(__name__)
