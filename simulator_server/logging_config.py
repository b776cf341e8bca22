"""Logging setup.

In stdio mode stdout carries the MCP protocol, so logs only ever go to
files under ``log_dir``. If those files cannot be opened the server keeps
running with a NullHandler instead of failing at startup.
"""

from __future__ import annotations

import logging
import sys

from simulator_server.config import SimulatorConfig

LOGGER_NAME = "ios-simulator-server"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(
    config: SimulatorConfig,
    console: bool = False,
    verbose: bool = False,
) -> logging.Logger:
    """Attach file handlers (combined.log, error.log) to the server logger.

    ``console`` additionally logs to stderr (HTTP mode only).
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level = logging.DEBUG if verbose else _LEVELS.get(config.log_level.lower(), logging.INFO)
    logger.setLevel(level)
    logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT)

    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        combined = logging.FileHandler(config.log_dir / "combined.log")
        errors = logging.FileHandler(config.log_dir / "error.log")
    except OSError as e:
        logger.addHandler(logging.NullHandler())
        if console:
            print(f"File logging disabled: {e}", file=sys.stderr)
    else:
        combined.setFormatter(formatter)
        errors.setFormatter(formatter)
        errors.setLevel(logging.ERROR)
        logger.addHandler(combined)
        logger.addHandler(errors)

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(formatter)
        logger.addHandler(stream)

    return logger
