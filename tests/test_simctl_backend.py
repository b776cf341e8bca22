"""Tests for SimctlBackend, with asyncio.create_subprocess_exec mocked."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from simulator_server.device.simctl import SimctlBackend
from simulator_server.models import DeviceError, DeviceState, EnumerationError

FIXTURES = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_proc(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0):
    """Create a mock async subprocess."""
    proc = AsyncMock()
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.returncode = returncode
    return proc


# ---------------------------------------------------------------------------
# _run_simctl
# ---------------------------------------------------------------------------


class TestRunSimctl:
    async def test_success(self):
        backend = SimctlBackend()
        proc = _mock_proc(stdout=b"ok\n")
        with patch("asyncio.create_subprocess_exec", return_value=proc) as mock_exec:
            stdout, stderr = await backend._run_simctl("list", "devices")
            assert stdout == "ok\n"
            mock_exec.assert_called_once_with(
                "xcrun", "simctl", "list", "devices",
                stdout=-1, stderr=-1,
            )

    async def test_nonzero_exit_raises(self):
        backend = SimctlBackend()
        proc = _mock_proc(stderr=b"Invalid device: bad-udid", returncode=1)
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            with pytest.raises(DeviceError, match="Invalid device"):
                await backend._run_simctl("boot", "bad-udid")


# ---------------------------------------------------------------------------
# is_available
# ---------------------------------------------------------------------------


class TestIsAvailable:
    async def test_available(self):
        backend = SimctlBackend()
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(returncode=0)):
            assert await backend.is_available() is True

    async def test_not_available(self):
        backend = SimctlBackend()
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(returncode=1)):
            assert await backend.is_available() is False

    async def test_exception_returns_false(self):
        backend = SimctlBackend()
        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError):
            assert await backend.is_available() is False


# ---------------------------------------------------------------------------
# list_simulators
# ---------------------------------------------------------------------------


class TestListSimulators:
    async def test_parse_fixture(self):
        backend = SimctlBackend()
        fixture_data = (FIXTURES / "simctl_list_output.json").read_bytes()
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(stdout=fixture_data)) as mock_exec:
            sims = await backend.list_simulators()

        mock_exec.assert_called_once_with(
            "xcrun", "simctl", "list", "devices", "--json",
            stdout=-1, stderr=-1,
        )
        # 7 devices across runtimes, unavailable one included
        assert len(sims) == 7

        booted = [s for s in sims if s.state == DeviceState.BOOTED]
        assert len(booted) == 1
        assert booted[0].name == "iPhone 14 Pro"
        assert booted[0].udid == "11111111-AAAA-4AAA-8AAA-111111111111"
        assert booted[0].os_version == "iOS 16.4"
        assert booted[0].runtime == "com.apple.CoreSimulator.SimRuntime.iOS-16-4"

    async def test_unavailable_flagged(self):
        backend = SimctlBackend()
        fixture_data = (FIXTURES / "simctl_list_output.json").read_bytes()
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(stdout=fixture_data)):
            sims = await backend.list_simulators()
        unavailable = [s for s in sims if not s.is_available]
        assert [s.name for s in unavailable] == ["iPhone 13"]

    async def test_missing_is_available_means_available(self):
        backend = SimctlBackend()
        data = {"devices": {"com.apple.CoreSimulator.SimRuntime.iOS-16-4": [
            {"udid": "X", "name": "iPhone 14", "state": "Shutdown"},
        ]}}
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(stdout=json.dumps(data).encode())):
            sims = await backend.list_simulators()
        assert sims[0].is_available is True

    async def test_shutting_down_and_unknown_states(self):
        backend = SimctlBackend()
        data = {"devices": {"com.apple.CoreSimulator.SimRuntime.iOS-17-0": [
            {"udid": "A", "name": "iPhone 15", "state": "Shutting Down", "isAvailable": True},
            {"udid": "B", "name": "iPhone 15 Pro", "state": "Creating", "isAvailable": True},
        ]}}
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(stdout=json.dumps(data).encode())):
            sims = await backend.list_simulators()
        assert sims[0].state == DeviceState.SHUTTING_DOWN
        assert sims[1].state == DeviceState.UNKNOWN

    async def test_empty_runtime(self):
        backend = SimctlBackend()
        data = {"devices": {"com.apple.CoreSimulator.SimRuntime.iOS-14-4": []}}
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(stdout=json.dumps(data).encode())):
            assert await backend.list_simulators() == []

    async def test_malformed_entry_skipped(self):
        backend = SimctlBackend()
        data = {"devices": {"com.apple.CoreSimulator.SimRuntime.iOS-16-4": [
            {"name": "no udid"},
            {"udid": "Y", "name": "iPhone 14", "state": "Booted"},
        ]}}
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(stdout=json.dumps(data).encode())):
            sims = await backend.list_simulators()
        assert [s.udid for s in sims] == ["Y"]

    async def test_invalid_json_raises_enumeration_error(self):
        backend = SimctlBackend()
        proc = _mock_proc(stdout=b"xcrun: note: some diagnostic\n{not json")
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            with pytest.raises(EnumerationError, match="Unparsable"):
                await backend.list_simulators()

    async def test_missing_devices_key_raises_enumeration_error(self):
        backend = SimctlBackend()
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc(stdout=b'{"runtimes": []}')):
            with pytest.raises(EnumerationError):
                await backend.list_simulators()

    async def test_command_failure_raises_enumeration_error(self):
        backend = SimctlBackend()
        proc = _mock_proc(stderr=b"xcrun: error: unable to find utility", returncode=72)
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            with pytest.raises(EnumerationError, match="unable to find utility"):
                await backend.list_simulators()

    async def test_xcrun_missing_raises_enumeration_error(self):
        backend = SimctlBackend()
        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("xcrun")):
            with pytest.raises(EnumerationError):
                await backend.list_simulators()


# ---------------------------------------------------------------------------
# _parse_runtime
# ---------------------------------------------------------------------------


class TestParseRuntime:
    def test_ios(self):
        assert SimctlBackend._parse_runtime("com.apple.CoreSimulator.SimRuntime.iOS-16-4") == "iOS 16.4"

    def test_three_part_version(self):
        assert SimctlBackend._parse_runtime("com.apple.CoreSimulator.SimRuntime.iOS-17-0-1") == "iOS 17.0.1"

    def test_unrecognised_passthrough(self):
        assert SimctlBackend._parse_runtime("something-else") == "something-else"


# ---------------------------------------------------------------------------
# Simple commands
# ---------------------------------------------------------------------------


class TestSimpleCommands:
    @pytest.mark.parametrize("method,args,expected", [
        ("boot", ("U1",), ("boot", "U1")),
        ("shutdown", ("U1",), ("shutdown", "U1")),
        ("install_app", ("U1", "/tmp/My.app"), ("install", "U1", "/tmp/My.app")),
        ("launch_app", ("U1", "com.example.App"), ("launch", "U1", "com.example.App")),
        ("terminate_app", ("U1", "com.example.App"), ("terminate", "U1", "com.example.App")),
    ])
    async def test_command_args(self, method, args, expected):
        backend = SimctlBackend()
        with patch("asyncio.create_subprocess_exec", return_value=_mock_proc()) as mock_exec:
            await getattr(backend, method)(*args)
        mock_exec.assert_called_once_with("xcrun", "simctl", *expected, stdout=-1, stderr=-1)

    async def test_screenshot_reads_and_removes_temp_file(self):
        backend = SimctlBackend()
        written: list[Path] = []

        async def fake_run(*args):
            path = Path(args[-1])
            path.write_bytes(b"\x89PNGdata")
            written.append(path)
            return "", ""

        with patch.object(backend, "_run_simctl", side_effect=fake_run):
            data = await backend.screenshot("U1")

        assert data == b"\x89PNGdata"
        assert not written[0].exists()
