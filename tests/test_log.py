"""
Unit Tests for Logging Setup

Tests for setup_logger, focusing on file output, levels and handler reuse.
"""

import logging

from chess_cli.utils.log import setup_logger


class TestSetupLogger:
    """Tests for the file logger."""

    def test_writes_to_file(self, tmp_path):
        log_file = tmp_path / "logs" / "engine.log"

        logger = setup_logger(debug=True, log_file=log_file, name="chess_cli.test_writes")
        logging.getLogger("chess_cli.test_writes.session").debug(">>> isready")
        for handler in logger.handlers:
            handler.flush()

        assert ">>> isready" in log_file.read_text(encoding="utf-8")

    def test_info_level_without_debug(self, tmp_path):
        logger = setup_logger(log_file=tmp_path / "engine.log", name="chess_cli.test_level")
        assert logger.level == logging.INFO

    def test_handlers_replaced(self, tmp_path):
        name = "chess_cli.test_handlers"
        setup_logger(log_file=tmp_path / "a.log", name=name)
        logger = setup_logger(log_file=tmp_path / "b.log", name=name)

        assert len(logger.handlers) == 1, "Calling twice must not duplicate handlers"
