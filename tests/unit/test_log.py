"""Unit tests for logging setup."""

import logging
import tempfile
from pathlib import Path

import pytest
from rich.logging import RichHandler

from warden.core.log import setup_logging


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Put the root logger back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_handler(self) -> None:
        """Test that a single rich handler is installed at the given level."""
        root = setup_logging("debug")

        assert root.level == logging.DEBUG
        assert [type(h) for h in root.handlers] == [RichHandler]

    def test_unknown_level(self) -> None:
        """Test that an unknown level name falls back to WARNING."""
        assert setup_logging("chatty").level == logging.WARNING

    def test_log_file(self, temp_dir: Path) -> None:
        """Test that records also go to the log file."""
        log_file = temp_dir / "logs" / "warden.log"
        setup_logging("INFO", log_file)

        logging.getLogger("warden.test").info("analysis started")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "INFO - analysis started" in log_file.read_text(encoding="utf-8")
