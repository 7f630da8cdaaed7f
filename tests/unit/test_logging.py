"""Unit tests for logging configuration."""

import logging
from pathlib import Path

import pytest

from basketfund.utils.logging import get_logger, log_with_context, setup_logging


class TestLoggingSetup:
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self) -> None:
        """Test setup_logging with default INFO level."""
        setup_logging()

        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self) -> None:
        """Test setup_logging with DEBUG level."""
        setup_logging(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_invalid_level_fallback(self) -> None:
        """Test setup_logging with invalid level falls back to INFO."""
        setup_logging(level="INVALID")

        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_quiets_scheduler(self) -> None:
        """Test APScheduler logs are raised to WARNING."""
        setup_logging(level="DEBUG")

        assert logging.getLogger("apscheduler").level == logging.WARNING

    def test_setup_logging_to_file(self, tmp_path: Path) -> None:
        """Test logs are also written to a file."""
        log_file = tmp_path / "logs" / "fund.log"
        setup_logging(level="INFO", log_file=log_file)

        get_logger("basketfund.test").info("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file.exists()
        assert "written to file" in log_file.read_text()

        setup_logging()


class TestGetLogger:
    """Test cases for get_logger function."""

    def test_get_logger_name(self) -> None:
        """Test get_logger creates logger with correct name."""
        logger = get_logger("basketfund.engine.fees")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "basketfund.engine.fees"

    def test_get_logger_same_instance(self) -> None:
        """Test get_logger returns same instance for same name."""
        assert get_logger("test_same") is get_logger("test_same")


class TestLogWithContext:
    """Test cases for log_with_context function."""

    def test_log_with_context_info(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test logging info message with context."""
        logger = get_logger("test_context")

        with caplog.at_level(logging.INFO):
            log_with_context(logger, "info", "Deposit accepted", amount=100, shares=1000)

        assert "Deposit accepted | amount=100 shares=1000" in caplog.text

    def test_log_with_context_drops_none(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test None values are left out."""
        logger = get_logger("test_context_none")

        with caplog.at_level(logging.INFO):
            log_with_context(logger, "info", "Fee collected", shares=5, caller=None)

        assert "Fee collected | shares=5" in caplog.text
        assert "caller" not in caplog.text

    def test_log_with_context_no_context(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test message without context is logged unchanged."""
        logger = get_logger("test_context_empty")

        with caplog.at_level(logging.WARNING):
            log_with_context(logger, "WARNING", "Plain message")

        assert caplog.records[-1].getMessage() == "Plain message"
        assert caplog.records[-1].levelno == logging.WARNING
