"""Tests for logging configuration."""

import logging

from docflow.logging import configure_logging


class TestConfigureLogging:
    """Test the logging setup."""

    def test_sets_root_level(self) -> None:
        """Verify the root logger takes the configured level."""
        configure_logging("debug")

        assert logging.getLogger().level == logging.DEBUG

    def test_quiets_transport_loggers(self) -> None:
        """Verify chatty client libraries are capped at warning."""
        configure_logging("DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("azure").level == logging.WARNING

    def test_optional_file_handler(self, tmp_path) -> None:
        """Verify a log file handler is added when requested."""
        log_file = tmp_path / "docflow.log"

        configure_logging("INFO", log_file=str(log_file))
        logging.getLogger("docflow.test").info("hello")

        root = logging.getLogger()
        assert any(isinstance(h, logging.FileHandler) for h in root.handlers)
        for handler in root.handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")
        configure_logging("INFO")
