"""Tests for file-only logging setup."""

from __future__ import annotations

import logging

import pytest

from simulator_server.config import SimulatorConfig
from simulator_server.logging_config import LOGGER_NAME, configure_logging


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class TestConfigureLogging:
    def test_file_handlers(self, tmp_path):
        config = SimulatorConfig(log_dir=tmp_path / "logs")
        logger = configure_logging(config)

        logging.getLogger(f"{LOGGER_NAME}.registry").info("session created")
        logging.getLogger(f"{LOGGER_NAME}.registry").error("boot failed")
        for handler in logger.handlers:
            handler.flush()

        combined = (tmp_path / "logs" / "combined.log").read_text()
        errors = (tmp_path / "logs" / "error.log").read_text()
        assert "[INFO] ios-simulator-server.registry: session created" in combined
        assert "boot failed" in combined
        assert "session created" not in errors
        assert "[ERROR]" in errors

    def test_stdout_untouched(self, tmp_path, capsys):
        configure_logging(SimulatorConfig(log_dir=tmp_path))
        logging.getLogger(LOGGER_NAME).warning("quiet")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == ""

    def test_level_from_config(self, tmp_path):
        logger = configure_logging(SimulatorConfig(log_dir=tmp_path, log_level="warn"))
        assert logger.level == logging.WARNING

    def test_verbose_forces_debug(self, tmp_path):
        logger = configure_logging(SimulatorConfig(log_dir=tmp_path, log_level="error"), verbose=True)
        assert logger.level == logging.DEBUG

    def test_unwritable_dir_falls_back_to_null_handler(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        logger = configure_logging(SimulatorConfig(log_dir=blocker / "logs"))
        assert [type(h) for h in logger.handlers] == [logging.NullHandler]
        logger.error("still fine")

    def test_console_adds_stderr(self, tmp_path, capsys):
        logger = configure_logging(SimulatorConfig(log_dir=tmp_path), console=True)
        logger.info("to stderr")
        captured = capsys.readouterr()
        assert "to stderr" in captured.err
        assert captured.out == ""

    def test_reconfigure_replaces_handlers(self, tmp_path):
        configure_logging(SimulatorConfig(log_dir=tmp_path))
        logger = configure_logging(SimulatorConfig(log_dir=tmp_path))
        assert len(logger.handlers) == 2
