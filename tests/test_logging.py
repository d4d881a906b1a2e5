"""Test logging configuration."""

import logging
import sys
from pathlib import Path

import pytest
import structlog
from structlog.testing import LogCapture

from vaws.common.logging import get_logger, setup_logging


class TestLogging:
    """Test logging functionality."""

    def setup_method(self) -> None:
        """Setup before each test - reset logging configuration."""
        structlog.reset_defaults()
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    def test_setup_logging_default(self) -> None:
        """Test default logging setup."""
        setup_logging()
        logger = get_logger("test")
        assert logger is not None
        assert hasattr(logger, "info")
        assert hasattr(logger, "warning")
        assert logging.getLogger().level == logging.INFO

    def test_console_goes_to_stderr(self) -> None:
        """Test the console handler leaves stdout to the terminal UI."""
        setup_logging()
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert handlers[0].stream is sys.stderr

    def test_setup_logging_with_level(self) -> None:
        """Test logging setup with custom level."""
        setup_logging(level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_replaces_handlers(self) -> None:
        """Test calling setup twice does not duplicate handlers."""
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_setup_logging_json_format(self) -> None:
        """Test logging setup with JSON format."""
        setup_logging(json_format=True)
        logger = get_logger("test")

        cap = LogCapture()
        structlog.configure(processors=[cap])

        logger.warning("detail fetch failed", resource_id="queue-14")

        assert len(cap.entries) == 1
        assert cap.entries[0]["event"] == "detail fetch failed"
        assert cap.entries[0]["resource_id"] == "queue-14"

    def test_setup_logging_with_file(self, tmp_path: Path) -> None:
        """Test logging setup with file output."""
        log_file = tmp_path / "vaws.log"
        setup_logging(log_file=str(log_file))

        python_logger = logging.getLogger("test_file")
        python_logger.info("tunnel active")

        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file.exists()
        assert "tunnel active" in log_file.read_text()

    def test_console_level_separate_from_file(self, tmp_path: Path) -> None:
        """Test a quiet console still lets debug records reach the log file."""
        log_file = tmp_path / "vaws.log"
        setup_logging(level="DEBUG", log_file=str(log_file), console_level="WARNING")

        console, file_handler = logging.getLogger().handlers
        assert logging.getLogger().level == logging.DEBUG
        assert console.level == logging.WARNING
        assert file_handler.level == logging.DEBUG

        logging.getLogger("test_quiet").debug("page fetched")
        file_handler.flush()
        assert "page fetched" in log_file.read_text()

    def test_unknown_level_rejected(self) -> None:
        """Test a misspelled level name fails loudly."""
        with pytest.raises(ValueError, match="Unknown log level: verbose"):
            setup_logging(level="verbose")
