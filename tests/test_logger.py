"""Tests for logger.py: setup_logging() and JsonFormatter.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from docsync.logger import JsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)


def _handlers(mock_basic):
    return mock_basic.call_args[1]["handlers"]


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("docsync.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        mock_basic.assert_called_once()
        handlers = _handlers(mock_basic)
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("docsync.logger.logging.basicConfig")
    def test_watch_mode_adds_file_handler(self, mock_basic, tmp_path, monkeypatch):
        log_file = tmp_path / "watch.log"
        monkeypatch.setenv("LOG_FILE", str(log_file))

        setup_logging(mode="watch")

        handlers = _handlers(mock_basic)
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        assert handlers[1].baseFilename == str(log_file)
        handlers[1].close()

    @patch("docsync.logger.logging.basicConfig")
    def test_explicit_log_file_in_cli_mode(self, mock_basic, tmp_path):
        log_file = tmp_path / "cli.log"

        setup_logging(mode="cli", log_file=str(log_file))

        handlers = _handlers(mock_basic)
        assert handlers[1].baseFilename == str(log_file)
        handlers[1].close()

    @patch("docsync.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")

        setup_logging(mode="cli", debug=True)

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("docsync.logger.logging.basicConfig")
    def test_env_beats_config_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")

        setup_logging(mode="cli", level="DEBUG")

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("docsync.logger.logging.basicConfig")
    def test_config_level_used_without_env(self, mock_basic):
        setup_logging(mode="cli", level="warning")

        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("docsync.logger.logging.basicConfig")
    def test_unknown_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")

        setup_logging(mode="cli")

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("docsync.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")

        assert isinstance(_handlers(mock_basic)[0].formatter, JsonFormatter)

    @patch("docsync.logger.logging.basicConfig")
    def test_file_format_includes_logger_name(self, mock_basic, tmp_path):
        setup_logging(mode="cli", log_file=str(tmp_path / "x.log"))

        stderr_fmt, file_fmt = (h.formatter._fmt for h in _handlers(mock_basic))
        assert "%(name)s" not in stderr_fmt
        assert "%(name)s" in file_fmt
        _handlers(mock_basic)[1].close()

    @patch("docsync.logger.logging.basicConfig")
    def test_third_party_silenced(self, _mock_basic):
        setup_logging(mode="cli")

        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("charset_normalizer").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    def _record(self, msg="hello %s", args=("world",), exc_info=None):
        return logging.LogRecord(
            name="docsync.sync.engine",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=args,
            exc_info=exc_info,
        )

    def test_basic_output(self):
        entry = json.loads(JsonFormatter().format(self._record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "docsync.sync.engine"
        assert entry["msg"] == "hello world"
        assert "ts" in entry
        assert "exc" not in entry

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = self._record(exc_info=sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in entry["exc"]

    def test_single_line_output(self):
        output = JsonFormatter().format(self._record(msg="a\nb", args=()))

        assert "\n" not in output
        assert json.loads(output)["msg"] == "a\nb"
