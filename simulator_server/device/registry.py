"""Session registry: in-memory simulator sessions and the device actions behind them."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from simulator_server.config import SimulatorConfig
from simulator_server.device.resolver import DeviceResolver
from simulator_server.device.simctl import SimctlBackend
from simulator_server.device.simulator import Simulator, get_simulator
from simulator_server.models import DeviceError, EnumerationError, SimulatorInfo, SimulatorSession

logger = logging.getLogger("ios-simulator-server.registry")

SimulatorFactory = Callable[[str], Awaitable[Simulator]]

BOOT_POLL_INITIAL = 0.5  # seconds before the first booted-state check
BOOT_POLL_MAX = 4.0


class SessionStore:
    """Key-value storage for session records, keyed by session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, SimulatorSession] = {}

    def get(self, session_id: str) -> SimulatorSession | None:
        return self._sessions.get(session_id)

    def put(self, session: SimulatorSession) -> None:
        self._sessions[session.id] = session

    def delete(self, session_id: str) -> bool:
        """Remove a record. Returns False if it was already gone."""
        return self._sessions.pop(session_id, None) is not None

    def values(self) -> list[SimulatorSession]:
        return list(self._sessions.values())


class SessionRegistry:
    """Creates, tracks and drives simulator sessions.

    Only ``create_session`` raises (resolution errors pass through
    unchanged). Every other operation logs failures and reports them as
    ``False`` or ``None``.

    There is no locking. Concurrent calls on the same session interleave at
    await points; a second delete of the same record is a silent no-op.
    Sessions do not claim their device, so the ``*_by_udid`` methods can act
    on a UDID that a session is also bound to.
    """

    def __init__(
        self,
        resolver: DeviceResolver,
        config: SimulatorConfig | None = None,
        store: SessionStore | None = None,
        simctl: SimctlBackend | None = None,
        simulator_factory: SimulatorFactory | None = None,
    ) -> None:
        self.resolver = resolver
        self.config = config or SimulatorConfig()
        self.store = store if store is not None else SessionStore()
        self.simctl = simctl or resolver.simctl
        self._simulator_factory = simulator_factory or (
            lambda udid: get_simulator(udid, simctl=self.simctl)
        )

    # ----------------------------------------------------------------
    # Session CRUD
    # ----------------------------------------------------------------

    async def create_session(
        self,
        device_name: str | None = None,
        platform_version: str | None = None,
        timeout: float | None = None,
    ) -> SimulatorSession:
        """Resolve a simulator and register a new session bound to it.

        Unset arguments fall back to the configured defaults.

        Raises DeviceNotFoundError if no simulator matches.
        """
        device_name = device_name or self.config.default_device
        platform_version = platform_version or self.config.default_os
        timeout = timeout or self.config.timeout

        logger.info(
            "Creating simulator session with device: %s, OS: %s (timeout %.0fs)",
            device_name, platform_version, timeout,
        )
        try:
            sim = await self.resolver.resolve(device_name, platform_version)
            session = await self._create_session_for(sim, device_name, platform_version)
        except Exception:
            logger.exception("Failed to create simulator session")
            raise
        return session

    async def _create_session_for(
        self,
        sim: SimulatorInfo,
        device_name: str,
        platform_version: str,
    ) -> SimulatorSession:
        logger.info("Creating session for simulator with UDID: %s, Name: %s", sim.udid, sim.name)
        simulator = await self._simulator_factory(sim.udid)
        now = datetime.now(timezone.utc)
        session = SimulatorSession(
            id=uuid.uuid4().hex,
            udid=sim.udid,
            device_name=device_name,
            platform_version=platform_version,
            simulator_name=sim.name,
            runtime=sim.runtime,
            created_at=now,
            last_used_at=now,
            simulator=simulator,
        )
        self.store.put(session)
        logger.info("Session created with ID: %s", session.id)
        return session

    def get_session(self, session_id: str) -> SimulatorSession | None:
        """Look up a session, refreshing its last-used timestamp. None if unknown."""
        session = self.store.get(session_id)
        if session is not None:
            session.last_used_at = datetime.now(timezone.utc)
        return session

    def list_sessions(self) -> list[SimulatorSession]:
        return self.store.values()

    def find_sessions_by_udid(self, udid: str) -> list[SimulatorSession]:
        """All sessions bound to ``udid`` (linear scan; there is no UDID index)."""
        return [s for s in self.store.values() if s.udid == udid]

    def _log_bound_sessions(self, udid: str) -> None:
        bound = self.find_sessions_by_udid(udid)
        if bound:
            logger.info("Simulator %s is bound to session(s): %s", udid, ", ".join(s.id for s in bound))

    def _lookup(self, session_id: str) -> SimulatorSession | None:
        session = self.store.get(session_id)
        if session is None:
            logger.warning("Session not found: %s", session_id)
        return session

    async def terminate_session(self, session_id: str) -> bool:
        """Shut down the session's simulator if running, then drop the record.

        The record is removed even when the shutdown fails, so a True result
        does not mean the simulator is off. Returns False only for an
        unknown session.
        """
        session = self._lookup(session_id)
        if session is None:
            return False

        try:
            if await self._is_running(session):
                logger.info("Shutting down simulator for session: %s", session_id)
                if not await self._shutdown(session):
                    logger.warning("Simulator may still be running for terminated session: %s", session_id)
            else:
                logger.info("Simulator already shut down for session: %s", session_id)
        except Exception:
            logger.exception("Error while stopping simulator for session: %s", session_id)
        finally:
            if not self.store.delete(session_id):
                logger.debug("Session %s was already removed", session_id)

        logger.info("Session terminated: %s", session_id)
        return True

    async def _is_running(self, session: SimulatorSession) -> bool:
        try:
            status = await session.simulator.stat()
            return status.get("state") == "Booted"
        except Exception as e:
            logger.warning("Failed to get simulator status, checking booted simulators: %s", e)
            booted = await self.resolver.list_booted()
            return any(s.udid == session.udid for s in booted)

    # ----------------------------------------------------------------
    # Boot / shutdown through a session
    # ----------------------------------------------------------------

    async def boot_simulator(self, session_id: str) -> bool:
        """Start the session's simulator. The booted state is not re-checked."""
        session = self._lookup(session_id)
        if session is None:
            return False
        try:
            await session.simulator.run()
        except Exception:
            logger.exception("Failed to boot simulator for session: %s", session_id)
            return False
        logger.info("Simulator booted for session: %s", session_id)
        return True

    async def shutdown_simulator(self, session_id: str) -> bool:
        """Shut down the session's simulator and confirm it left the booted list.

        Order: handle shutdown (CLI shutdown if that raises), verify; if the
        simulator is still booted, CLI shutdown once more and verify again.
        """
        session = self._lookup(session_id)
        if session is None:
            return False
        return await self._shutdown(session)

    async def _shutdown(self, session: SimulatorSession) -> bool:
        session_id = session.id
        udid = session.udid
        logger.info("Attempting to shut down simulator for session: %s, UDID: %s", session_id, udid)
        try:
            try:
                await session.simulator.shutdown()
                logger.info("Simulator API shutdown successful for session: %s", session_id)
            except Exception as e:
                logger.warning("API shutdown failed, falling back to CLI for session %s: %s", session_id, e)
                await self.direct_shutdown_by_udid(udid)

            if await self.verify_shutdown(udid):
                logger.info("Simulator successfully shut down for session: %s", session_id)
                return True

            logger.warning("Simulator still running, trying direct CLI shutdown for session: %s", session_id)
            await self.direct_shutdown_by_udid(udid)
            if await self.verify_shutdown(udid):
                logger.info("Simulator successfully shut down for session: %s", session_id)
                return True
        except Exception:
            logger.exception("Failed to shut down simulator for session: %s", session_id)
            return False

        logger.warning("Simulator may still be running for session: %s", session_id)
        return False

    # ----------------------------------------------------------------
    # App management and interaction
    # ----------------------------------------------------------------

    async def install_app(self, session_id: str, app_path: str) -> bool:
        session = self._lookup(session_id)
        if session is None:
            return False
        try:
            await session.simulator.install_app(app_path)
        except Exception:
            logger.exception("Failed to install app %s for session: %s", app_path, session_id)
            return False
        logger.info("App installed on simulator for session: %s", session_id)
        return True

    async def launch_app(self, session_id: str, bundle_id: str) -> bool:
        session = self._lookup(session_id)
        if session is None:
            return False
        try:
            await session.simulator.launch_app(bundle_id)
        except Exception:
            logger.exception("Failed to launch app %s for session: %s", bundle_id, session_id)
            return False
        logger.info("App %s launched on simulator for session: %s", bundle_id, session_id)
        return True

    async def terminate_app(self, session_id: str, bundle_id: str) -> bool:
        session = self._lookup(session_id)
        if session is None:
            return False
        try:
            await session.simulator.terminate_app(bundle_id)
        except Exception:
            logger.exception("Failed to terminate app %s for session: %s", bundle_id, session_id)
            return False
        logger.info("App %s terminated on simulator for session: %s", bundle_id, session_id)
        return True

    async def tap(self, session_id: str, x: float, y: float) -> bool:
        """Tap at screen coordinates (points) via ``idb ui tap``."""
        session = self._lookup(session_id)
        if session is None:
            return False
        try:
            await session.simulator.spawn_process(
                "idb",
                ["ui", "tap", str(int(round(x))), str(int(round(y))), "--udid", session.udid],
            )
        except Exception:
            logger.exception("Failed to perform tap for session: %s", session_id)
            return False
        logger.info("Tap performed at (%s, %s) for session: %s", x, y, session_id)
        return True

    async def get_screenshot(self, session_id: str) -> bytes | None:
        """Capture a PNG screenshot, or None on failure."""
        session = self._lookup(session_id)
        if session is None:
            return None
        try:
            data = await session.simulator.get_screenshot()
        except Exception:
            logger.exception("Failed to capture screenshot for session: %s", session_id)
            return None
        logger.info("Screenshot captured for session: %s", session_id)
        return data

    # ----------------------------------------------------------------
    # Direct UDID operations (no session involved)
    # ----------------------------------------------------------------

    async def direct_shutdown_by_udid(self, udid: str) -> bool:
        """Run ``simctl shutdown`` for a UDID. True if the command succeeded."""
        logger.info("Attempting direct CLI shutdown for simulator: %s", udid)
        try:
            await self.simctl.shutdown(udid)
        except Exception as e:
            logger.error("Failed direct CLI shutdown for simulator %s: %s", udid, e)
            return False
        logger.info("Direct CLI shutdown command completed for simulator: %s", udid)
        return True

    async def verify_shutdown(self, udid: str) -> bool:
        """Check that ``udid`` is absent from the booted list.

        If the list itself cannot be retrieved, the shutdown is not
        considered verified.
        """
        try:
            booted = await self.resolver.list_booted(strict=True)
        except EnumerationError as e:
            logger.error("Failed to verify simulator shutdown status for %s: %s", udid, e)
            return False
        if any(s.udid == udid for s in booted):
            logger.warning("Simulator %s is still reported as running", udid)
            return False
        logger.info("Verified simulator %s is shut down", udid)
        return True

    async def shutdown_by_udid(self, udid: str) -> bool:
        """CLI shutdown followed by verification. Bound sessions are kept."""
        self._log_bound_sessions(udid)
        if not await self.direct_shutdown_by_udid(udid):
            return False
        return await self.verify_shutdown(udid)

    async def boot_by_udid(self, udid: str) -> bool:
        """Boot a simulator by UDID without creating a session.

        An already booted simulator is reported as success without another
        start action. After starting, the booted list is polled with
        backoff until the configured timeout.
        """
        logger.info("Booting simulator with UDID: %s", udid)
        try:
            sim = await self.resolver.find_by_udid(udid)
            if sim is None:
                logger.error("No simulator found with UDID: %s", udid)
                return False
            self._log_bound_sessions(udid)

            booted = await self.resolver.list_booted()
            if any(s.udid == udid for s in booted):
                logger.info("Simulator with UDID %s is already booted", udid)
                return True

            simulator = await self._simulator_factory(udid)
            await simulator.run()

            if await self._wait_for_booted(udid, self.config.timeout):
                logger.info("Successfully booted simulator with UDID: %s", udid)
                return True
            logger.error("Simulator with UDID %s did not register as booted within %.0fs", udid, self.config.timeout)
            return False
        except Exception:
            logger.exception("Failed to boot simulator with UDID: %s", udid)
            return False

    async def _wait_for_booted(self, udid: str, timeout: float) -> bool:
        start = time.monotonic()
        interval = BOOT_POLL_INITIAL
        while True:
            remaining = timeout - (time.monotonic() - start)
            if remaining <= 0:
                return False
            await asyncio.sleep(min(interval, remaining))
            try:
                booted = await self.resolver.list_booted(strict=True)
            except DeviceError as e:
                logger.debug("Booted-state poll failed for %s: %s", udid, e)
            else:
                if any(s.udid == udid for s in booted):
                    logger.info("Device %s booted in %.1fs", udid[:8], time.monotonic() - start)
                    return True
            interval = min(interval * 2, BOOT_POLL_MAX)
