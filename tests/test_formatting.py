"""Tests for tool-result text: simulator tables, catalogs and not-found help."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from simulator_server.formatting import (
    format_available_simulators,
    format_booted_simulators,
    format_device_catalog,
    format_not_found_help,
    group_by_os,
    session_to_dict,
    sessions_to_json,
    suggest_simulator,
)
from simulator_server.models import DeviceNotFoundError, DeviceState, SimulatorInfo, SimulatorSession


def _sim(
    name: str,
    udid: str,
    os_version: str = "iOS 16.4",
    state: DeviceState = DeviceState.SHUTDOWN,
    is_available: bool = True,
) -> SimulatorInfo:
    runtime = "com.apple.CoreSimulator.SimRuntime." + os_version.replace(" ", "-").replace(".", "-")
    return SimulatorInfo(
        udid=udid, name=name, state=state, runtime=runtime,
        os_version=os_version, is_available=is_available,
    )


SIMS = [
    _sim("iPhone 14 Pro", "AAAA", state=DeviceState.BOOTED),
    _sim("iPhone 14", "BBBB"),
    _sim("iPhone 15", "CCCC", os_version="iOS 17.0"),
    _sim("iPhone 13", "DDDD", os_version="iOS 15.5", is_available=False),
]


class TestSessions:
    def test_session_to_dict(self):
        now = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)
        session = SimulatorSession(
            id="abc", udid="BBBB", device_name="iPhone 14",
            platform_version="16.4", simulator_name="iPhone 14",
            runtime="com.apple.CoreSimulator.SimRuntime.iOS-16-4",
            created_at=now, last_used_at=now, simulator=object(),
        )
        data = session_to_dict(session)
        assert data["id"] == "abc"
        assert data["created_at"].startswith("2024-01-10T09:00:00")
        assert "simulator" not in data
        assert json.loads(sessions_to_json([session]))[0]["udid"] == "BBBB"

    def test_empty_sessions(self):
        assert json.loads(sessions_to_json([])) == []


class TestGroupByOs:
    def test_groups_and_sorts(self):
        groups = group_by_os(SIMS[:3])
        assert list(groups) == ["iOS 16.4", "iOS 17.0"]
        assert [s.name for s in groups["iOS 16.4"]] == ["iPhone 14", "iPhone 14 Pro"]


class TestAvailableSimulators:
    def test_lists_only_available(self):
        text = format_available_simulators(SIMS)
        assert text.startswith("AVAILABLE SIMULATORS - USE THESE UDIDs TO BOOT DIRECTLY")
        assert "AAAA" in text and "CCCC" in text
        assert "DDDD" not in text
        assert "boot-simulator-by-udid" in text

    def test_embeds_json(self):
        text = format_available_simulators(SIMS)
        payload = text.split("Original JSON data:\n```\n", 1)[1].rsplit("\n```", 1)[0]
        assert [s["udid"] for s in json.loads(payload)] == ["AAAA", "BBBB", "CCCC"]

    def test_empty(self):
        assert "No available simulators found." in format_available_simulators([])


class TestBootedSimulators:
    def test_lists_booted(self):
        text = format_booted_simulators([SIMS[0]])
        assert text.startswith("BOOTED SIMULATORS")
        assert "AAAA" in text
        assert "shutdown-simulator-by-udid" in text

    def test_empty_gives_hint(self):
        text = format_booted_simulators([])
        assert "No simulators currently booted." in text
        assert "list-available-simulators" in text


class TestDeviceCatalog:
    def test_catalog(self):
        text = format_device_catalog(SIMS)
        assert text.startswith("Available simulators you can use:")
        assert "iOS 17.0:" in text
        assert "  - iPhone 15 (CCCC)" in text
        assert "iPhone 13" not in text

    def test_empty(self):
        assert format_device_catalog([]) == "No available simulators were found."


class TestSuggestSimulator:
    def test_substring(self):
        assert suggest_simulator(SIMS, "iPhone 14").udid == "BBBB"

    def test_first_word_fallback(self):
        assert suggest_simulator(SIMS, "iPhone 99").udid == "BBBB"

    def test_unavailable_never_suggested(self):
        assert suggest_simulator(SIMS, "iPhone 13").udid != "DDDD"

    def test_nothing_close(self):
        assert suggest_simulator(SIMS, "Pixel") is None
        assert suggest_simulator(SIMS, None) is None
        assert suggest_simulator(SIMS, "   ") is None


class TestNotFoundHelp:
    def test_includes_catalog_and_suggestion(self):
        error = DeviceNotFoundError(
            "No matching simulator found for device: iPhone 99, OS: 16.4",
            device_name="iPhone 99", platform_version="16.4", simulators=SIMS,
        )
        text = format_not_found_help(error)
        assert text.startswith("No simulator matched the request.")
        assert "Available simulators you can use:" in text
        assert "Try this instead: boot-simulator-by-udid with udid='BBBB'" in text
        assert text.endswith("Original error: No matching simulator found for device: iPhone 99, OS: 16.4")

    def test_without_suggestion(self):
        error = DeviceNotFoundError("nope", device_name="Pixel", simulators=[])
        text = format_not_found_help(error)
        assert "Try this instead" not in text
        assert "No available simulators were found." in text
