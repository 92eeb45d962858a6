"""Tests for src/logging_config.py."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from src.logging_config import configure_logging


@pytest.fixture
def bare_root():
    """Root logger with no handlers, restored afterwards."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    root.handlers = []
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


class TestConfigureLogging:
    def test_installs_console_and_rotating_file(self, bare_root, tmp_path):
        log_file = tmp_path / "nested" / "profiles.log"

        assert configure_logging(logging.DEBUG, log_file) is True

        kinds = [type(h) for h in bare_root.handlers]
        assert RotatingFileHandler in kinds
        assert any(type(h) is logging.StreamHandler for h in bare_root.handlers)
        assert bare_root.level == logging.DEBUG
        assert log_file.parent.is_dir()

    def test_console_only(self, bare_root):
        assert configure_logging(logging.INFO, log_file=None) is True
        assert len(bare_root.handlers) == 1

    def test_second_call_is_a_no_op(self, bare_root, tmp_path):
        configure_logging(logging.INFO, tmp_path / "profiles.log")
        handlers = bare_root.handlers[:]

        assert configure_logging(logging.DEBUG, tmp_path / "other.log") is False
        assert bare_root.handlers == handlers
        assert bare_root.level == logging.INFO

    def test_transport_loggers_quieted(self, bare_root):
        configure_logging(logging.DEBUG, log_file=None)
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING

    def test_unwritable_log_dir_falls_back_to_console(self, bare_root, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")

        assert configure_logging(logging.INFO, blocker / "profiles.log") is True
        assert len(bare_root.handlers) == 1
