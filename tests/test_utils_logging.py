"""Tests for liftforge.utils.logging."""

import logging
from pathlib import Path

import pytest
from rich.logging import RichHandler

from liftforge.utils.logging import Timer, setup_logging


@pytest.fixture
def package_logger():
    """The package logger, restored after the test."""
    logger = logging.getLogger("liftforge")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_rich_console(self, package_logger: logging.Logger) -> None:
        """The default console handler is rich at INFO."""
        setup_logging(verbosity=1)
        [handler] = package_logger.handlers
        assert isinstance(handler, RichHandler)
        assert handler.level == logging.INFO

    def test_repeated_setup_replaces_handlers(self, package_logger: logging.Logger) -> None:
        """Calling setup twice does not stack handlers."""
        setup_logging(verbosity=0, use_rich=False)
        setup_logging(verbosity=2, use_rich=False)
        [handler] = package_logger.handlers
        assert handler.level == logging.DEBUG

    def test_log_file_gets_debug(self, package_logger: logging.Logger, tmp_path: Path) -> None:
        """The log file records debug messages even when the console is quiet."""
        log_file = tmp_path / "run.log"
        setup_logging(verbosity=0, log_file=log_file, use_rich=False)
        logging.getLogger("liftforge.core.pipeline").debug("aligner input written")
        for handler in package_logger.handlers:
            handler.flush()
        assert "aligner input written" in log_file.read_text()


class TestTimer:
    """Tests for Timer."""

    def test_logs_elapsed(self, caplog: pytest.LogCaptureFixture) -> None:
        """Elapsed time is recorded and logged."""
        logger = logging.getLogger("liftforge.tests")
        with caplog.at_level(logging.INFO, logger="liftforge.tests"):
            with Timer("CESAR run for transcript TX1", logger) as timer:
                pass
        assert timer.elapsed >= 0
        assert "CESAR run for transcript TX1 completed in" in caplog.text
