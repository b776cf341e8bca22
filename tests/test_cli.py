"""Tests for CLI dispatch."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from simulator_server.config import SimulatorConfig
from simulator_server.main import build_registry, cli


@pytest.fixture
def config(tmp_path):
    return SimulatorConfig(log_dir=tmp_path)


class TestCli:
    def test_default_is_stdio(self, config):
        with patch("simulator_server.main.load_config", return_value=config), \
             patch("simulator_server.main.configure_logging") as mock_logging, \
             patch("simulator_server.mcp_server.SimulatorMcpServer") as mock_server:
            cli([])
        mock_logging.assert_called_once_with(config, console=False, verbose=False)
        mock_server.return_value.run.assert_called_once()

    def test_stdio_failure_exits_1(self, config):
        with patch("simulator_server.main.load_config", return_value=config), \
             patch("simulator_server.main.configure_logging"), \
             patch("simulator_server.mcp_server.SimulatorMcpServer") as mock_server:
            mock_server.return_value.run.side_effect = RuntimeError("transport closed")
            with pytest.raises(SystemExit) as exc_info:
                cli(["stdio"])
        assert exc_info.value.code == 1

    def test_http_uses_config_address(self, config):
        with patch("simulator_server.main.load_config", return_value=config), \
             patch("simulator_server.main.configure_logging"), \
             patch("simulator_server.main.uvicorn.run") as mock_run:
            cli(["http"])
        _, kwargs = mock_run.call_args
        assert kwargs["host"] == "localhost"
        assert kwargs["port"] == 3001

    def test_http_flags_override(self, config):
        with patch("simulator_server.main.load_config", return_value=config), \
             patch("simulator_server.main.configure_logging"), \
             patch("simulator_server.main.uvicorn.run") as mock_run:
            cli(["--verbose", "http", "--host", "0.0.0.0", "--port", "4100"])
        _, kwargs = mock_run.call_args
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 4100
        assert kwargs["log_level"] == "debug"


def test_build_registry_shares_backend(config):
    registry = build_registry(config)
    assert registry.simctl is registry.resolver.simctl
    assert registry.config is config
    assert registry.list_sessions() == []
