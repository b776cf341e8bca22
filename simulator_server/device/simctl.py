"""SimctlBackend: async wrapper around xcrun simctl for simulator management.

Every call runs ``xcrun simctl`` with stdout and stderr captured, so nothing
the CLI prints can reach the stdio channel used by the MCP transport.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import tempfile
from pathlib import Path

from simulator_server.models import DeviceError, DeviceState, EnumerationError, SimulatorInfo

logger = logging.getLogger("ios-simulator-server.simctl")


class SimctlBackend:
    """Manages iOS simulators via xcrun simctl subprocess calls."""

    async def _run_simctl(self, *args: str) -> tuple[str, str]:
        """Run an xcrun simctl command and return (stdout, stderr).

        Raises DeviceError on non-zero exit code.
        """
        proc = await asyncio.create_subprocess_exec(
            "xcrun", "simctl", *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise DeviceError(
                f"simctl {args[0]} failed: {stderr.decode().strip()}",
                tool="simctl",
            )
        return stdout.decode(), stderr.decode()

    async def is_available(self) -> bool:
        """Check if xcrun simctl is available."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "which", "xcrun",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            await proc.communicate()
            return proc.returncode == 0
        except Exception:
            return False

    async def list_simulators(self) -> list[SimulatorInfo]:
        """List every simulator by parsing ``simctl list devices --json``.

        Unavailable simulators are included with ``is_available=False``.
        Raises EnumerationError if the command fails or its output is not
        the expected JSON document.
        """
        try:
            stdout, _ = await self._run_simctl("list", "devices", "--json")
        except (DeviceError, OSError) as e:
            raise EnumerationError(f"Could not list simulators: {e}", tool="simctl") from e

        try:
            data = json.loads(stdout)
            runtimes = data["devices"]
        except (ValueError, KeyError, TypeError) as e:
            raise EnumerationError(f"Unparsable simctl device list: {e}", tool="simctl") from e
        if not isinstance(runtimes, dict):
            raise EnumerationError("Unparsable simctl device list: 'devices' is not an object", tool="simctl")

        simulators: list[SimulatorInfo] = []
        for runtime_key, device_list in runtimes.items():
            os_version = self._parse_runtime(runtime_key)
            for dev in device_list or []:
                if "udid" not in dev or "name" not in dev:
                    logger.debug("Skipping malformed simctl entry under %s: %s", runtime_key, dev)
                    continue
                simulators.append(SimulatorInfo(
                    udid=dev["udid"],
                    name=dev["name"],
                    state=DeviceState.parse(dev.get("state")),
                    runtime=runtime_key,
                    os_version=os_version,
                    is_available=dev.get("isAvailable") is not False,
                ))

        logger.debug("Found %d simulators", len(simulators))
        return simulators

    @staticmethod
    def _parse_runtime(runtime_key: str) -> str:
        """Extract human-readable OS version from a runtime identifier.

        e.g. 'com.apple.CoreSimulator.SimRuntime.iOS-16-4' -> 'iOS 16.4'
        """
        match = re.search(r"SimRuntime\.(.+)$", runtime_key)
        if not match:
            return runtime_key
        raw = match.group(1)  # e.g. 'iOS-16-4'
        parts = raw.split("-", 1)
        if len(parts) == 2:
            return f"{parts[0]} {parts[1].replace('-', '.')}"
        return raw

    async def boot(self, udid: str) -> None:
        """Boot a simulator."""
        await self._run_simctl("boot", udid)

    async def shutdown(self, udid: str) -> None:
        """Shutdown a simulator."""
        await self._run_simctl("shutdown", udid)

    async def install_app(self, udid: str, app_path: str) -> None:
        """Install an app on a simulator."""
        await self._run_simctl("install", udid, app_path)

    async def launch_app(self, udid: str, bundle_id: str) -> None:
        """Launch an app on a simulator."""
        await self._run_simctl("launch", udid, bundle_id)

    async def terminate_app(self, udid: str, bundle_id: str) -> None:
        """Terminate an app on a simulator."""
        await self._run_simctl("terminate", udid, bundle_id)

    async def screenshot(self, udid: str) -> bytes:
        """Capture a screenshot from a simulator.

        Writes to a temp file, reads bytes, then cleans up.
        """
        with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as tmp:
            tmp_path = tmp.name

        try:
            await self._run_simctl("io", udid, "screenshot", tmp_path)
            return Path(tmp_path).read_bytes()
        finally:
            Path(tmp_path).unlink(missing_ok=True)
