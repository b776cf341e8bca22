"""iOS simulator server: MCP over stdio, or a local HTTP control API.

Usage:
    ios-simulator-server [stdio] [--verbose]
    ios-simulator-server http [--host HOST] [--port PORT] [--verbose]
"""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI

from simulator_server.api.sessions import router as sessions_router
from simulator_server.api.simulators import router as simulators_router
from simulator_server.config import SimulatorConfig, load_config
from simulator_server.device.registry import SessionRegistry
from simulator_server.device.resolver import DeviceResolver
from simulator_server.device.simctl import SimctlBackend
from simulator_server.logging_config import configure_logging

logger = logging.getLogger("ios-simulator-server")

VERSION = "0.1.0"


def build_registry(config: SimulatorConfig) -> SessionRegistry:
    """Wire simctl, resolver and registry. One registry per process."""
    simctl = SimctlBackend()
    resolver = DeviceResolver(simctl)
    return SessionRegistry(resolver, config, simctl=simctl)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: SimulatorConfig = app.state.config
    logger.info(
        "HTTP API starting (default device: %s, OS: %s, timeout: %.0fs)",
        config.default_device, config.default_os, config.timeout,
    )
    yield
    logger.info("Server stopped")


def create_app(
    config: SimulatorConfig | None = None,
    registry: SessionRegistry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    if config is None:
        config = SimulatorConfig()

    app = FastAPI(
        title="iOS Simulator Server",
        version=VERSION,
        description="Local control API for iOS simulator sessions",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.registry = registry if registry is not None else build_registry(config)

    app.include_router(simulators_router)
    app.include_router(sessions_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check with simctl availability and session count."""
        registry = app.state.registry
        return {
            "status": "ok",
            "version": VERSION,
            "tools": {"simctl": await registry.simctl.is_available()},
            "sessions": len(registry.list_sessions()),
        }

    return app


def _cmd_stdio(args: argparse.Namespace, config: SimulatorConfig) -> None:
    """Run the MCP server on stdin/stdout. Nothing else may write to stdout."""
    from simulator_server.mcp_server import SimulatorMcpServer

    configure_logging(config, console=False, verbose=args.verbose)
    server = SimulatorMcpServer(build_registry(config))
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    except Exception as e:
        logger.exception("MCP server failed")
        print(f"Failed to start MCP server: {e}", file=sys.stderr)
        sys.exit(1)


def _cmd_http(args: argparse.Namespace, config: SimulatorConfig) -> None:
    configure_logging(config, console=True, verbose=args.verbose)
    host = args.host or config.http_host
    port = args.port or config.http_port
    print(f"iOS Simulator Server v{VERSION}", file=sys.stderr)
    print(f"  http://{host}:{port}", file=sys.stderr)
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level="debug" if args.verbose else "info",
    )


def cli(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="ios-simulator-server",
        description="Expose iOS simulator control to MCP clients or over HTTP",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("stdio", help="Run the MCP server over stdio (default)")

    http = sub.add_parser("http", help="Run the local HTTP control API")
    http.add_argument("--host", default=None, help="Bind host (default: localhost)")
    http.add_argument("--port", type=int, default=None, help="Bind port (default: 3001)")

    args = parser.parse_args(argv)
    config = load_config()

    if args.command == "http":
        _cmd_http(args, config)
    else:
        _cmd_stdio(args, config)
