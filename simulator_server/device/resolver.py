"""Device resolution: map a device name/OS pair or a UDID to one simulator."""

from __future__ import annotations

import logging
import re

from simulator_server.device.simctl import SimctlBackend
from simulator_server.models import DeviceNotFoundError, DeviceState, EnumerationError, SimulatorInfo

logger = logging.getLogger("ios-simulator-server.resolver")

UDID_PATTERN = re.compile(r"^[0-9A-F]{8}-(?:[0-9A-F]{4}-){3}[0-9A-F]{12}$", re.IGNORECASE)


class DeviceResolver:
    """Finds simulators by UDID or by name with tiered matching.

    Device names are often prefixes of one another ("iPhone 14",
    "iPhone 14 Plus", "iPhone 14 Pro"), so matching goes from strict to
    loose and stops at the first tier with a hit:

    1. exact name (case-insensitive)
    2. whole-word match ("14 Pro" matches "iPhone 14 Pro", but
       "iPhone 14" does not)
    3. substring match

    Every tier also requires the simulator to be available and its runtime
    to match the requested OS version, if one was given.

    There is no cache: each call queries simctl again.
    """

    def __init__(self, simctl: SimctlBackend | None = None) -> None:
        self.simctl = simctl or SimctlBackend()

    # ----------------------------------------------------------------
    # Enumeration
    # ----------------------------------------------------------------

    async def list_simulators(self, strict: bool = False) -> list[SimulatorInfo]:
        """List all simulators.

        With ``strict=False`` an enumeration failure is logged and reported
        as an empty list. With ``strict=True`` the EnumerationError propagates.
        """
        try:
            return await self.simctl.list_simulators()
        except EnumerationError as e:
            if strict:
                raise
            logger.error("Failed to list simulators: %s", e)
            return []

    async def list_booted(self, strict: bool = False) -> list[SimulatorInfo]:
        """List simulators currently in the Booted state."""
        simulators = await self.list_simulators(strict=strict)
        booted = [s for s in simulators if s.state == DeviceState.BOOTED]
        logger.debug("Found %d booted simulators", len(booted))
        return booted

    async def find_by_udid(self, udid: str) -> SimulatorInfo | None:
        """Return the simulator with this UDID, or None."""
        for sim in await self.list_simulators():
            if sim.udid == udid:
                return sim
        return None

    # ----------------------------------------------------------------
    # Resolution
    # ----------------------------------------------------------------

    @staticmethod
    def is_udid(value: str) -> bool:
        """Check if a string has the canonical 8-4-4-4-12 hex UDID shape."""
        return bool(UDID_PATTERN.match(value.strip()))

    @staticmethod
    def _version_matches(runtime: str, platform_version: str | None) -> bool:
        """Check if the requested OS version appears in a runtime identifier.

        Runtime identifiers spell versions with dashes
        ('...SimRuntime.iOS-16-4'), so '16.4' is also tried as '16-4'.

        Examples:
            _version_matches("com.apple.CoreSimulator.SimRuntime.iOS-16-4", "16.4") → True
            _version_matches("com.apple.CoreSimulator.SimRuntime.iOS-16-4", "ios-16") → True
            _version_matches("com.apple.CoreSimulator.SimRuntime.iOS-17-0", "16.4") → False
        """
        if not platform_version:
            return True
        runtime_lower = runtime.lower()
        requested = platform_version.strip().lower()
        return requested in runtime_lower or requested.replace(".", "-") in runtime_lower

    @classmethod
    def _eligible(cls, sim: SimulatorInfo, platform_version: str | None) -> bool:
        return sim.is_available and cls._version_matches(sim.runtime, platform_version)

    @classmethod
    def _find_exact_match(
        cls,
        simulators: list[SimulatorInfo],
        device_name: str,
        platform_version: str | None,
    ) -> SimulatorInfo | None:
        name_lower = device_name.lower()
        for sim in simulators:
            if sim.name.lower() == name_lower and cls._eligible(sim, platform_version):
                return sim
        return None

    @classmethod
    def _find_word_boundary_match(
        cls,
        simulators: list[SimulatorInfo],
        device_name: str,
        platform_version: str | None,
    ) -> SimulatorInfo | None:
        normalized = re.sub(r"\s+", " ", device_name).strip()
        if not normalized:
            return None
        # Whole words only, and no occurrence may be followed by another word:
        # "iPhone 14" must not pick "iPhone 14 Pro", nor "Pro" pick "Pro Pro",
        # while "iPhone SE" may still pick "iPhone SE (3rd generation)".
        whole = rf"(?<!\w){re.escape(normalized)}(?!\w)"
        word = re.compile(whole, re.IGNORECASE)
        extended = re.compile(whole + r"(?=\s+\w)", re.IGNORECASE)
        for sim in simulators:
            if (
                word.search(sim.name)
                and not extended.search(sim.name)
                and cls._eligible(sim, platform_version)
            ):
                return sim
        return None

    @classmethod
    def _find_substring_match(
        cls,
        simulators: list[SimulatorInfo],
        device_name: str,
        platform_version: str | None,
    ) -> SimulatorInfo | None:
        name_lower = device_name.lower()
        for sim in simulators:
            if name_lower in sim.name.lower() and cls._eligible(sim, platform_version):
                return sim
        return None

    @classmethod
    def match(
        cls,
        simulators: list[SimulatorInfo],
        device_name: str,
        platform_version: str | None = None,
    ) -> SimulatorInfo | None:
        """Apply the three name tiers in order and return the first hit."""
        for tier in (cls._find_exact_match, cls._find_word_boundary_match, cls._find_substring_match):
            found = tier(simulators, device_name, platform_version)
            if found:
                logger.debug("Matched %r via %s: %s (%s)", device_name, tier.__name__, found.name, found.udid)
                return found
        return None

    async def resolve(
        self,
        device_name_or_udid: str,
        platform_version: str | None = None,
    ) -> SimulatorInfo:
        """Resolve a device name (plus optional OS version) or UDID to one simulator.

        A syntactically valid UDID that is listed and available is returned
        as-is, skipping name matching and ignoring ``platform_version``.

        Raises DeviceNotFoundError if nothing matches.
        """
        simulators = await self.list_simulators()

        if self.is_udid(device_name_or_udid):
            udid = device_name_or_udid.strip()
            for sim in simulators:
                if sim.udid.lower() == udid.lower() and sim.is_available:
                    logger.info("Found simulator with exact UDID match: %s", sim.name)
                    return sim

        self._log_candidates(simulators, device_name_or_udid)

        found = self.match(simulators, device_name_or_udid, platform_version)
        if found:
            return found

        raise DeviceNotFoundError(
            f"No matching simulator found for device: {device_name_or_udid}, "
            f"OS: {platform_version or 'any'}",
            device_name=device_name_or_udid,
            platform_version=platform_version,
            simulators=simulators,
        )

    @staticmethod
    def _log_candidates(simulators: list[SimulatorInfo], device_name: str) -> None:
        name_lower = device_name.lower()
        candidates = [s for s in simulators if name_lower in s.name.lower()]
        if not candidates:
            logger.info("No simulators found matching %r", device_name)
            return
        logger.debug("Simulators matching %r:", device_name)
        for sim in candidates:
            logger.debug("  %s - UDID: %s - Runtime: %s", sim.name, sim.udid, sim.runtime)
