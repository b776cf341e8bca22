"""MCP server exposing simulator sessions and direct UDID control over stdio."""

from __future__ import annotations

import base64
import json
import logging

from mcp.server.fastmcp import FastMCP, Image
from mcp.server.fastmcp.exceptions import ToolError

from simulator_server.device.registry import SessionRegistry
from simulator_server.device.resolver import DeviceResolver
from simulator_server.device.screenshots import process_screenshot
from simulator_server.formatting import (
    format_available_simulators,
    format_booted_simulators,
    format_not_found_help,
    session_to_dict,
    sessions_to_json,
)
from simulator_server.models import DeviceError, DeviceNotFoundError, EnumerationError

logger = logging.getLogger("ios-simulator-server.mcp")

SERVER_NAME = "iOS Simulator MCP Server"
INSTRUCTIONS = (
    "Control iOS simulators. For simple boot/shutdown use list-available-simulators "
    "and the *-by-udid tools; create a session for app install/launch, taps and screenshots."
)


class SimulatorMcpServer:
    """Registers tools, resources and prompts on a FastMCP instance.

    Handlers are plain async methods so they can be called directly; they
    return text and raise ToolError for anything the caller should see as
    a failed tool call.
    """

    def __init__(self, registry: SessionRegistry, resolver: DeviceResolver | None = None) -> None:
        self.registry = registry
        self.resolver = resolver or registry.resolver
        self.mcp = FastMCP(SERVER_NAME, instructions=INSTRUCTIONS)

        self._register_session_tools()
        self._register_app_tools()
        self._register_interaction_tools()
        self._register_simulator_control()
        self._register_resources()
        self._register_prompts()
        logger.info("MCP server initialized")

    def run(self) -> None:
        """Serve over stdio until the client disconnects."""
        logger.info("Starting MCP server with stdio transport")
        self.mcp.run(transport="stdio")

    # ----------------------------------------------------------------
    # Registration
    # ----------------------------------------------------------------

    def _register_session_tools(self) -> None:
        self.mcp.add_tool(
            self.create_simulator_session,
            name="create-simulator-session",
            description="Create a session bound to a simulator chosen by device name/OS version "
            "(or a UDID passed as device_name). Boots it unless autoboot is false.",
        )
        self.mcp.add_tool(
            self.terminate_simulator_session,
            name="terminate-simulator-session",
            description="Shut down a session's simulator (if running) and remove the session.",
        )
        self.mcp.add_tool(
            self.list_simulator_sessions,
            name="list-simulator-sessions",
            description="List all simulator sessions.",
        )
        self.mcp.add_tool(
            self.boot_simulator,
            name="boot-simulator",
            description="Boot the simulator bound to a session.",
        )
        self.mcp.add_tool(
            self.shutdown_simulator,
            name="shutdown-simulator",
            description="Shut down the simulator bound to a session, keeping the session.",
        )

    def _register_app_tools(self) -> None:
        self.mcp.add_tool(
            self.install_app,
            name="install-app",
            description="Install a .app bundle from a local path on the session's simulator.",
        )
        self.mcp.add_tool(
            self.launch_app,
            name="launch-app",
            description="Launch an installed app by bundle identifier.",
        )
        self.mcp.add_tool(
            self.terminate_app,
            name="terminate-app",
            description="Terminate a running app by bundle identifier.",
        )

    def _register_interaction_tools(self) -> None:
        self.mcp.add_tool(
            self.tap,
            name="tap",
            description="Tap the session's simulator screen at (x, y) in points.",
        )
        self.mcp.add_tool(
            self.take_screenshot,
            name="take-screenshot",
            description="Capture the session's simulator screen. format: png or jpeg; scale: 0.1-1.0.",
        )

    def _register_simulator_control(self) -> None:
        self.mcp.add_tool(
            self.list_available_simulators,
            name="list-available-simulators",
            description="List all available simulators with their UDIDs (recommended first step).",
        )
        self.mcp.add_tool(
            self.list_booted_simulators,
            name="list-booted-simulators",
            description="List currently booted simulators.",
        )
        self.mcp.add_tool(
            self.boot_simulator_by_udid,
            name="boot-simulator-by-udid",
            description="Boot a simulator directly by UDID, without a session.",
        )
        self.mcp.add_tool(
            self.shutdown_simulator_by_udid,
            name="shutdown-simulator-by-udid",
            description="Shut down a simulator directly by UDID and verify it stopped.",
        )

    # Resource and prompt handlers are closures: FastMCP matches URI template
    # parameters against the handler's own signature.

    def _register_resources(self) -> None:
        @self.mcp.resource("simulator://sessions", name="simulator-sessions-list", mime_type="application/json")
        def sessions_resource() -> str:
            return self.read_sessions()

        @self.mcp.resource(
            "simulator://sessions/{session_id}",
            name="simulator-session",
            mime_type="application/json",
        )
        def session_resource(session_id: str) -> str:
            return self.read_session(session_id)

        @self.mcp.resource(
            "simulator://sessions/{session_id}/screenshot",
            name="simulator-screenshot",
            mime_type="application/json",
        )
        async def screenshot_resource(session_id: str) -> str:
            return await self.read_screenshot(session_id)

    def _register_prompts(self) -> None:
        @self.mcp.prompt(name="create-simulator", description="Create and launch a new iOS simulator.")
        def create_simulator(device_name: str | None = None, platform_version: str | None = None) -> str:
            return self.create_simulator_prompt(device_name, platform_version)

        @self.mcp.prompt(
            name="install-and-run-app",
            description="Install an app, launch it and take a screenshot.",
        )
        def install_and_run_app(session_id: str, app_path: str, bundle_id: str) -> str:
            return self.install_and_run_app_prompt(session_id, app_path, bundle_id)

        @self.mcp.prompt(
            name="boot-simulator-by-name",
            description="Find a simulator by name and iOS version and boot it by UDID.",
        )
        async def boot_simulator_by_name(device_name: str, ios_version: str | None = None) -> str:
            return await self.boot_simulator_by_name_prompt(device_name, ios_version)

    # ----------------------------------------------------------------
    # Session tools
    # ----------------------------------------------------------------

    async def create_simulator_session(
        self,
        device_name: str | None = None,
        platform_version: str | None = None,
        timeout: float | None = None,
        autoboot: bool = True,
    ) -> str:
        """Create a simulator session and optionally boot it."""
        logger.info("Creating simulator session: device=%s os=%s", device_name, platform_version)
        try:
            session = await self.registry.create_session(
                device_name=device_name,
                platform_version=platform_version,
                timeout=timeout,
            )
        except DeviceNotFoundError as e:
            raise ToolError(format_not_found_help(e)) from e
        except DeviceError as e:
            raise ToolError(f"Failed to create simulator session: {e}") from e

        booted = False
        if autoboot:
            booted = await self.registry.boot_simulator(session.id)
            if not booted:
                logger.warning("Failed to auto-boot simulator session: %s", session.id)

        return json.dumps({**session_to_dict(session), "booted": booted}, indent=2)

    async def terminate_simulator_session(self, session_id: str) -> str:
        if not await self.registry.terminate_session(session_id):
            raise ToolError(f"Failed to terminate session: {session_id}")
        return f"Session terminated: {session_id}"

    async def list_simulator_sessions(self) -> str:
        return sessions_to_json(self.registry.list_sessions())

    async def boot_simulator(self, session_id: str) -> str:
        if not await self.registry.boot_simulator(session_id):
            raise ToolError(f"Failed to boot simulator for session: {session_id}")
        return f"Simulator booted for session: {session_id}"

    async def shutdown_simulator(self, session_id: str) -> str:
        if not await self.registry.shutdown_simulator(session_id):
            raise ToolError(f"Failed to shutdown simulator for session: {session_id}")
        return f"Simulator shutdown for session: {session_id}"

    # ----------------------------------------------------------------
    # App and interaction tools
    # ----------------------------------------------------------------

    async def install_app(self, session_id: str, app_path: str) -> str:
        if not await self.registry.install_app(session_id, app_path):
            raise ToolError(f"Failed to install app on session: {session_id}")
        return f"App installed on session: {session_id}"

    async def launch_app(self, session_id: str, bundle_id: str) -> str:
        if not await self.registry.launch_app(session_id, bundle_id):
            raise ToolError(f"Failed to launch app {bundle_id} on session: {session_id}")
        return f"App {bundle_id} launched on session: {session_id}"

    async def terminate_app(self, session_id: str, bundle_id: str) -> str:
        if not await self.registry.terminate_app(session_id, bundle_id):
            raise ToolError(f"Failed to terminate app {bundle_id} on session: {session_id}")
        return f"App {bundle_id} terminated on session: {session_id}"

    async def tap(self, session_id: str, x: float, y: float) -> str:
        if not await self.registry.tap(session_id, x, y):
            raise ToolError(f"Failed to perform tap on session: {session_id}")
        return f"Tap performed at ({x}, {y}) on session: {session_id}"

    async def take_screenshot(self, session_id: str, format: str = "png", scale: float = 1.0) -> Image:
        raw = await self.registry.get_screenshot(session_id)
        if raw is None:
            raise ToolError(f"Failed to get screenshot for session: {session_id}")
        try:
            data, media_type = process_screenshot(raw, format=format, scale=scale)
        except ValueError as e:
            raise ToolError(str(e)) from e
        except OSError as e:
            raise ToolError(f"Failed to process screenshot for session: {session_id}: {e}") from e
        return Image(data=data, format=media_type.split("/", 1)[1])

    # ----------------------------------------------------------------
    # Direct simulator control
    # ----------------------------------------------------------------

    async def list_available_simulators(self) -> str:
        try:
            simulators = await self.resolver.list_simulators(strict=True)
        except EnumerationError as e:
            raise ToolError(f"Could not list simulators: {e}") from e
        return format_available_simulators(simulators)

    async def list_booted_simulators(self) -> str:
        try:
            booted = await self.resolver.list_booted(strict=True)
        except EnumerationError as e:
            raise ToolError(f"Could not list simulators: {e}") from e
        return format_booted_simulators(booted)

    async def boot_simulator_by_udid(self, udid: str) -> str:
        if not await self.registry.boot_by_udid(udid):
            raise ToolError(f"Failed to boot simulator with UDID: {udid}")
        return f"Successfully booted simulator with UDID: {udid}"

    async def shutdown_simulator_by_udid(self, udid: str) -> str:
        if not await self.registry.direct_shutdown_by_udid(udid):
            raise ToolError(f"Failed to shutdown simulator with UDID: {udid}")
        if not await self.registry.verify_shutdown(udid):
            raise ToolError(
                f"Simulator shutdown command executed but simulator may still be running. UDID: {udid}"
            )
        return f"Simulator with UDID: {udid} successfully shut down"

    # ----------------------------------------------------------------
    # Resources
    # ----------------------------------------------------------------

    def read_sessions(self) -> str:
        return sessions_to_json(self.registry.list_sessions())

    def read_session(self, session_id: str) -> str:
        session = self.registry.get_session(session_id)
        if session is None:
            return json.dumps({"error": f"Session not found: {session_id}"})
        return json.dumps(session_to_dict(session))

    async def read_screenshot(self, session_id: str) -> str:
        raw = await self.registry.get_screenshot(session_id)
        if raw is None:
            return json.dumps({"error": f"Failed to get screenshot for session: {session_id}"})
        return json.dumps({"format": "png", "data": base64.b64encode(raw).decode()})

    # ----------------------------------------------------------------
    # Prompts
    # ----------------------------------------------------------------

    def create_simulator_prompt(
        self,
        device_name: str | None = None,
        platform_version: str | None = None,
    ) -> str:
        text = "Create and launch a new iOS simulator"
        if device_name:
            text += f" with device {device_name}"
        if platform_version:
            text += f" running iOS {platform_version}"
        return text + "."

    def install_and_run_app_prompt(self, session_id: str, app_path: str, bundle_id: str) -> str:
        return (
            f"For simulator session {session_id}:\n"
            f"1. Install the app from {app_path}\n"
            f"2. Launch the app with bundle ID {bundle_id}\n"
            f"3. Take a screenshot of the running app"
        )

    async def boot_simulator_by_name_prompt(self, device_name: str, ios_version: str | None = None) -> str:
        """Suggest the boot-simulator-by-udid call for the best match, or a listing."""
        simulators = await self.resolver.list_simulators()
        match = DeviceResolver.match(simulators, device_name, ios_version)
        if match is None and ios_version:
            match = DeviceResolver.match(simulators, device_name)
        if match is None:
            return "list-available-simulators"
        return f"boot-simulator-by-udid with udid='{match.udid}'"
