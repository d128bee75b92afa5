"""Logging configuration for the run analytics engine.

Configures stderr and optional file logging. JSON results are written to
stdout by the CLI, so all log output goes to stderr or rotating log files.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# 10 MB per file, keep 5 backups
_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_dir: Path | None = None,
) -> logging.Logger:
    """Configure logging for the analytics package.

    Always adds a stderr handler. Adds a rotating file handler when
    ``log_dir`` is given.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_dir: Directory for log files. The directory is created if needed.

    Returns:
        The configured package logger.
    """
    root_logger = logging.getLogger("run_analytics")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers on repeated calls
    root_logger.handlers.clear()

    formatter = logging.Formatter(_LOG_FORMAT)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    root_logger.addHandler(stderr_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / "run_analytics.log",
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    return root_logger
