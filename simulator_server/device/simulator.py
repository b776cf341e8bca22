"""Simulator: per-UDID device handle used by sessions and direct UDID calls."""

from __future__ import annotations

import asyncio
import logging

from simulator_server.device.simctl import SimctlBackend
from simulator_server.models import DeviceError

logger = logging.getLogger("ios-simulator-server.simulator")


class Simulator:
    """Handle bound to a single simulator UDID.

    All actions raise DeviceError on failure; callers decide whether that is
    fatal.
    """

    def __init__(self, udid: str, simctl: SimctlBackend | None = None) -> None:
        self.udid = udid
        self.simctl = simctl or SimctlBackend()

    def __repr__(self) -> str:
        return f"Simulator(udid={self.udid!r})"

    async def stat(self) -> dict:
        """Return {"state": ..., "name": ...} for this simulator."""
        for sim in await self.simctl.list_simulators():
            if sim.udid == self.udid:
                return {"state": sim.state.value, "name": sim.name}
        raise DeviceError(f"Simulator {self.udid} not found", tool="simulator")

    async def run(self) -> None:
        """Boot the simulator. Already booted counts as success."""
        try:
            await self.simctl.boot(self.udid)
        except DeviceError as e:
            if "current state: Booted" in str(e):
                logger.debug("Simulator %s already booted", self.udid)
                return
            raise

    async def shutdown(self) -> None:
        await self.simctl.shutdown(self.udid)

    async def install_app(self, app_path: str) -> None:
        await self.simctl.install_app(self.udid, app_path)

    async def launch_app(self, bundle_id: str) -> None:
        await self.simctl.launch_app(self.udid, bundle_id)

    async def terminate_app(self, bundle_id: str) -> None:
        await self.simctl.terminate_app(self.udid, bundle_id)

    async def get_screenshot(self) -> bytes:
        """Capture the screen as PNG bytes."""
        return await self.simctl.screenshot(self.udid)

    async def spawn_process(self, command: str, args: list[str]) -> tuple[str, str]:
        """Run an arbitrary command against this device and return (stdout, stderr).

        Raises DeviceError on non-zero exit code or if the binary is missing.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                command, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise DeviceError(f"{command} not found: {e}", tool="simulator") from e
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise DeviceError(
                f"{command} {' '.join(args[:2])} failed: {stderr.decode().strip()}",
                tool="simulator",
            )
        return stdout.decode(), stderr.decode()


async def get_simulator(udid: str, simctl: SimctlBackend | None = None) -> Simulator:
    """Acquire a handle for ``udid``."""
    return Simulator(udid, simctl=simctl)
