"""
Tests for logging setup.
"""

import json
import logging

from poker_sync.utils.logging import JSONFormatter, get_logger, setup_logging


class TestSetupLogging:
    """Test logging configuration."""

    def test_creates_log_files(self, tmp_path, reset_logging):
        """Test rotating log files are attached and written."""
        result = setup_logging(log_level="DEBUG", log_dir=tmp_path, enable_console=False)

        assert set(result["loggers"]) == {"main", "binder", "reconciler", "room", "relay"}
        assert result["log_dir"] == tmp_path
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = (tmp_path / "poker-sync.log").read_text()
        assert "logging_initialized" in content
        assert (tmp_path / "poker-sync-errors.log").exists()

    def test_console_handler(self, tmp_path, reset_logging):
        """Test the rich console handler is optional."""
        from rich.logging import RichHandler

        setup_logging(log_dir=tmp_path, enable_console=True, enable_json=False)

        assert any(isinstance(h, RichHandler) for h in logging.getLogger().handlers)

    def test_level_applied(self, tmp_path, reset_logging):
        """Test the root level follows the requested level."""
        setup_logging(log_level="warning", log_dir=tmp_path, enable_console=False)

        assert logging.getLogger().level == logging.WARNING

    def test_error_file_only_gets_errors(self, tmp_path, reset_logging):
        """Test the error log ignores records below ERROR."""
        setup_logging(log_level="DEBUG", log_dir=tmp_path, enable_console=False)

        logger = logging.getLogger("poker-sync.test")
        logger.info("quiet event")
        logger.error("loud event")
        for handler in logging.getLogger().handlers:
            handler.flush()

        errors = (tmp_path / "poker-sync-errors.log").read_text()
        assert "loud event" in errors
        assert "quiet event" not in errors

    def test_get_logger(self):
        """Test named loggers can be bound."""
        logger = get_logger("poker-sync.test")

        assert logger.bind(room="abc123") is not None


class TestJSONFormatter:
    """Test the JSON file formatter."""

    def test_format_includes_extras(self):
        """Test extra attributes are serialized, unserializable ones as strings."""
        record = logging.LogRecord(
            name="poker-sync.room", level=logging.INFO, pathname=__file__, lineno=1,
            msg="vote %s", args=("cast",), exc_info=None,
        )
        record.room_id = "abc123"
        record.handle = object()

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "vote cast"
        assert data["level"] == "INFO"
        assert data["logger"] == "poker-sync.room"
        assert data["room_id"] == "abc123"
        assert isinstance(data["handle"], str)
        assert "msg" not in data
