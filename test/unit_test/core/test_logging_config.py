"""Unit tests for the logging configuration module.

Tests verify level, format and file-handler handling of ``setup_logging``.
"""

import logging
from pathlib import Path

import pytest

from panelhub.core.logging_config import (
    DETAILED_FORMAT,
    JSON_FORMAT,
    LOG_FILE_NAME,
    MODULE_LOG_LEVELS,
    SIMPLE_FORMAT,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_handlers():
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def _console_handler() -> logging.Handler:
    root_logger = logging.getLogger()
    handler = next(
        (h for h in root_logger.handlers if type(h) is logging.StreamHandler),
        None,
    )
    assert handler is not None
    return handler


class TestSetupLoggingLogLevels:
    """Test setup_logging with different log levels."""

    @pytest.mark.parametrize(
        "log_level,expected_level",
        [
            ("DEBUG", logging.DEBUG),
            ("INFO", logging.INFO),
            ("WARNING", logging.WARNING),
            ("error", logging.ERROR),
        ],
    )
    def test_setup_logging_with_different_levels(self, log_level, expected_level):
        """Console handler level follows the requested level, case-insensitively."""
        setup_logging(log_level=log_level)
        assert _console_handler().level == expected_level


class TestSetupLoggingFormats:
    """Test setup_logging with different log formats."""

    @pytest.mark.parametrize(
        "log_format,expected_format",
        [
            ("simple", SIMPLE_FORMAT),
            ("detailed", DETAILED_FORMAT),
            ("json", JSON_FORMAT),
        ],
    )
    def test_setup_logging_with_different_formats(self, log_format, expected_format):
        setup_logging(log_format=log_format)
        assert _console_handler().formatter._fmt == expected_format


class TestSetupLoggingFileHandler:
    """Test optional file logging."""

    def test_no_file_handler_without_directory(self):
        setup_logging(log_file_dir=None)
        assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)

    def test_file_handler_writes_into_directory(self, tmp_path: Path):
        log_dir = tmp_path / "logs"
        setup_logging(log_file_dir=str(log_dir))

        file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1
        assert Path(file_handlers[0].baseFilename) == log_dir / LOG_FILE_NAME
        assert file_handlers[0].level == logging.DEBUG


class TestModuleLevels:
    """Test per-module level configuration."""

    def test_third_party_http_loggers_are_quieted(self):
        setup_logging()
        assert MODULE_LOG_LEVELS["httpx"] == "WARNING"
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("panelhub.scheduler").level == logging.INFO

    def test_get_logger_returns_named_logger(self):
        logger = get_logger("panelhub.test")
        assert logger.name == "panelhub.test"
