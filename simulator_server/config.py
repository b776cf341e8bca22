"""Server configuration: built-in defaults, config.json, then environment."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger("ios-simulator-server.config")

CONFIG_FILE_NAME = "config.json"


@dataclass
class SimulatorConfig:
    """Process-wide defaults for the iOS simulator server.

    The device layer only reads ``default_device``, ``default_os`` and
    ``timeout``; the rest configures logging and the HTTP API.
    """

    default_device: str = "iPhone 14"
    default_os: str = "16.4"
    timeout: float = 30.0  # seconds
    log_level: str = "info"
    log_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")
    http_host: str = "localhost"
    http_port: int = 3001


def read_config_file(path: Path) -> dict:
    """Read a JSON config file. Returns {} if missing or invalid."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except Exception as e:
        logger.warning("Failed to read config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not an object", path)
        return {}
    return data


def _parse_int(name: str, raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return None


def load_config(
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
    load_env_file: bool = True,
) -> SimulatorConfig:
    """Build a SimulatorConfig.

    Precedence: environment variables > config.json > built-in defaults.
    A ``.env`` file in the working directory is loaded into the process
    environment first (existing variables win).

    ``SIMULATOR_TIMEOUT`` and the file's ``simulator.timeout`` are in
    milliseconds.
    """
    if load_env_file:
        load_dotenv(Path.cwd() / ".env")
    env = os.environ if environ is None else environ
    path = config_path or Path.cwd() / CONFIG_FILE_NAME
    file_config = read_config_file(path)

    config = SimulatorConfig()

    simulator = file_config.get("simulator") or {}
    mcp = file_config.get("mcp") or {}
    server = file_config.get("server") or {}

    if simulator.get("defaultDevice"):
        config.default_device = str(simulator["defaultDevice"])
    if simulator.get("defaultOS"):
        config.default_os = str(simulator["defaultOS"])
    if isinstance(simulator.get("timeout"), (int, float)) and simulator["timeout"] > 0:
        config.timeout = simulator["timeout"] / 1000
    if mcp.get("logLevel"):
        config.log_level = str(mcp["logLevel"])
    if server.get("host"):
        config.http_host = str(server["host"])
    if isinstance(server.get("port"), int):
        config.http_port = server["port"]

    if env.get("SIMULATOR_DEFAULT_DEVICE"):
        config.default_device = env["SIMULATOR_DEFAULT_DEVICE"]
    if env.get("SIMULATOR_DEFAULT_OS"):
        config.default_os = env["SIMULATOR_DEFAULT_OS"]
    timeout_ms = _parse_int("SIMULATOR_TIMEOUT", env.get("SIMULATOR_TIMEOUT"))
    if timeout_ms and timeout_ms > 0:
        config.timeout = timeout_ms / 1000
    if env.get("MCP_LOG_LEVEL"):
        config.log_level = env["MCP_LOG_LEVEL"]
    if env.get("SERVER_HOST"):
        config.http_host = env["SERVER_HOST"]
    port = _parse_int("SERVER_PORT", env.get("SERVER_PORT"))
    if port:
        config.http_port = port

    return config
