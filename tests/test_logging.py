"""Tests for logging setup."""

import json

import pytest

from sql_gateway.core.logging import get_logger, setup_logging


@pytest.mark.unit
class TestSetupLogging:
    def test_setup_without_errors(self):
        setup_logging()

    def test_setup_verbose(self):
        setup_logging(verbose=True)

    def test_setup_json(self):
        setup_logging(json_logs=True)


@pytest.mark.unit
class TestGetLogger:
    def test_get_logger_without_name(self):
        setup_logging()
        assert get_logger() is not None

    def test_get_logger_with_name(self):
        setup_logging()
        assert get_logger("test_module") is not None


@pytest.mark.unit
class TestLogOutput:
    def test_log_to_stderr(self, capsys):
        """Log output goes to stderr, not stdout."""
        setup_logging(verbose=True)
        get_logger().info("test message")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "test message" in captured.err

    def test_debug_suppressed_when_not_verbose(self, capsys):
        setup_logging(verbose=False)
        get_logger().debug("hidden detail")

        assert "hidden detail" not in capsys.readouterr().err

    def test_json_lines(self, capsys):
        setup_logging(json_logs=True)
        get_logger("gateway").info("query executed", rows=3)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "query executed"
        assert record["rows"] == 3
        assert record["logger"] == "gateway"
        assert record["level"] == "info"
        setup_logging()
