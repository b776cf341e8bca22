"""User-facing text for tool results: simulator tables, device catalogs, hints."""

from __future__ import annotations

import json
from collections import defaultdict

from simulator_server.models import DeviceNotFoundError, SimulatorInfo, SimulatorSession

_RULE = "-" * 78


def session_to_dict(session: SimulatorSession) -> dict:
    """JSON-safe view of a session (the device handle is left out)."""
    return session.model_dump(mode="json")


def sessions_to_json(sessions: list[SimulatorSession]) -> str:
    return json.dumps([session_to_dict(s) for s in sessions], indent=2)


def group_by_os(simulators: list[SimulatorInfo]) -> dict[str, list[SimulatorInfo]]:
    """Group simulators by OS version, each group sorted by name."""
    groups: dict[str, list[SimulatorInfo]] = defaultdict(list)
    for sim in simulators:
        groups[sim.os_version or sim.runtime].append(sim)
    return {os_version: sorted(sims, key=lambda s: s.name) for os_version, sims in sorted(groups.items())}


def format_available_simulators(simulators: list[SimulatorInfo]) -> str:
    """Table of available simulators with their UDIDs, plus workflow hints."""
    available = [s for s in simulators if s.is_available]
    lines = [
        "AVAILABLE SIMULATORS - USE THESE UDIDs TO BOOT DIRECTLY",
        _RULE,
        f"{'NAME':<28} | {'OS VERSION':<12} | {'STATE':<13} | UDID",
        _RULE,
    ]
    if not available:
        lines.append("No available simulators found.")
    for os_version, sims in group_by_os(available).items():
        for sim in sims:
            lines.append(f"{sim.name:<28} | {os_version:<12} | {sim.state.value:<13} | {sim.udid}")
    lines += [
        _RULE,
        "",
        "RECOMMENDED WORKFLOW:",
        "1. Pick a simulator from the list above",
        "2. Call 'boot-simulator-by-udid' with udid='<UDID from the list>'",
        "3. When done, call 'shutdown-simulator-by-udid' with the same UDID",
        "",
        "Session tools ('create-simulator-session' and friends) are only needed",
        "for app install/launch, taps and screenshots.",
        "",
        "Original JSON data:",
        "```",
        json.dumps([s.model_dump(mode="json") for s in available], indent=2),
        "```",
    ]
    return "\n".join(lines)


def format_booted_simulators(booted: list[SimulatorInfo]) -> str:
    """Table of booted simulators, or a hint on how to boot one."""
    lines = [
        "BOOTED SIMULATORS",
        _RULE,
        f"{'UDID':<36} | {'NAME':<20} | {'STATE':<7} | RUNTIME",
        _RULE,
    ]
    if not booted:
        lines += [
            "No simulators currently booted.",
            _RULE,
            "",
            "Use 'list-available-simulators' to see all devices with their UDIDs,",
            "then 'boot-simulator-by-udid' with the UDID of your chosen device.",
        ]
    else:
        for sim in booted:
            lines.append(f"{sim.udid:<36} | {sim.name:<20} | {sim.state.value:<7} | {sim.runtime}")
        lines += [
            _RULE,
            "",
            "To shut down a simulator, use 'shutdown-simulator-by-udid' with udid='<UDID from above>'.",
        ]
    lines += [
        "",
        "Original JSON data:",
        "```",
        json.dumps([s.model_dump(mode="json") for s in booted], indent=2),
        "```",
    ]
    return "\n".join(lines)


def format_device_catalog(simulators: list[SimulatorInfo]) -> str:
    """Available device names grouped per OS version."""
    available = [s for s in simulators if s.is_available]
    if not available:
        return "No available simulators were found."
    lines = ["Available simulators you can use:"]
    for os_version, sims in group_by_os(available).items():
        lines.append("")
        lines.append(f"{os_version}:")
        lines.extend(f"  - {s.name} ({s.udid})" for s in sims)
    return "\n".join(lines)


def suggest_simulator(simulators: list[SimulatorInfo], device_name: str | None) -> SimulatorInfo | None:
    """Closest available simulator for a name that failed to resolve."""
    if not device_name:
        return None
    name_lower = device_name.lower()
    candidates = [s for s in simulators if s.is_available and name_lower in s.name.lower()]
    if not candidates:
        # Fall back to the first word ("iPhone 99" → any iPhone)
        first = name_lower.split()[0] if name_lower.split() else ""
        candidates = [s for s in simulators if s.is_available and first and first in s.name.lower()]
    if not candidates:
        return None
    return min(candidates, key=lambda s: len(s.name))


def format_not_found_help(error: DeviceNotFoundError) -> str:
    """Explain a failed resolution: catalog of devices plus a concrete next step."""
    parts = [
        "No simulator matched the request.",
        "Instead of sessions you can also work directly with UDIDs:",
        "1. Run 'list-available-simulators' to see all available simulators",
        "2. Boot one with 'boot-simulator-by-udid'",
        "",
        format_device_catalog(error.simulators),
    ]
    suggestion = suggest_simulator(error.simulators, error.device_name)
    if suggestion:
        parts += [
            "",
            f"Try this instead: boot-simulator-by-udid with udid='{suggestion.udid}' ({suggestion.name}, {suggestion.os_version})",
        ]
    parts += ["", f"Original error: {error}"]
    return "\n".join(parts)
