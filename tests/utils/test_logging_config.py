"""Tests for analytics logging configuration."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

import pytest

from run_analytics.utils.logging_config import setup_logging

if TYPE_CHECKING:
    from pathlib import Path


@pytest.mark.unit
class TestSetupLogging:
    """Tests for setup_logging()."""

    def _clear_logger(self) -> None:
        logger = logging.getLogger("run_analytics")
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)

    def test_adds_stderr_handler(self) -> None:
        self._clear_logger()
        logger = setup_logging()
        stream_handlers = [
            h
            for h in logger.handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, RotatingFileHandler)
        ]
        assert len(stream_handlers) == 1
        assert logger.level == logging.INFO
        self._clear_logger()

    def test_adds_file_handler_with_log_dir(self, tmp_path: Path) -> None:
        self._clear_logger()
        log_dir = tmp_path / "logs"
        logger = setup_logging("DEBUG", log_dir)

        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 10 * 1024 * 1024
        assert file_handlers[0].backupCount == 5
        assert (log_dir / "run_analytics.log").exists()
        assert logger.level == logging.DEBUG
        for handler in file_handlers:
            handler.close()
        self._clear_logger()

    def test_repeated_calls_do_not_duplicate(self) -> None:
        self._clear_logger()
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1
        self._clear_logger()
