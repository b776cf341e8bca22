"""Core data models for simulators, sessions and API schemas."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DeviceError(Exception):
    """Raised when a simulator operation fails.

    ``tool`` names the collaborator that failed (simctl, simulator, resolver...).
    """

    def __init__(self, message: str, tool: str = "simctl") -> None:
        super().__init__(message)
        self.tool = tool


class DeviceNotFoundError(DeviceError):
    """No available simulator matches the requested name/OS or UDID.

    Carries the enumeration snapshot the resolution ran against so the
    caller can build a device catalog without querying the platform again.
    """

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        platform_version: str | None = None,
        simulators: list[SimulatorInfo] | None = None,
    ) -> None:
        super().__init__(message, tool="resolver")
        self.device_name = device_name
        self.platform_version = platform_version
        self.simulators = simulators or []


class EnumerationError(DeviceError):
    """The simulator listing could not be retrieved or parsed."""


# ---------------------------------------------------------------------------
# Simulator models
# ---------------------------------------------------------------------------


class DeviceState(str, enum.Enum):
    """Simulator boot states as reported by ``simctl list devices``."""

    SHUTDOWN = "Shutdown"
    BOOTED = "Booted"
    BOOTING = "Booting"
    SHUTTING_DOWN = "Shutting Down"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> DeviceState:
        """Map a raw state string to a DeviceState, defaulting to UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class SimulatorInfo(BaseModel):
    """A read-only snapshot of one simulator, sourced fresh from simctl."""

    udid: str
    name: str
    state: DeviceState = DeviceState.UNKNOWN
    runtime: str = Field(default="", description="e.g. com.apple.CoreSimulator.SimRuntime.iOS-16-4")
    os_version: str = Field(default="", description="e.g. 'iOS 16.4'")
    is_available: bool = True


class SimulatorSession(BaseModel):
    """A named handle bound to one simulator UDID.

    Sessions are bookkeeping only: they do not lock the device, and the same
    UDID may still be driven directly outside any session.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    udid: str
    device_name: str = Field(description="Device name as requested")
    platform_version: str = Field(description="OS version as requested")
    simulator_name: str = ""
    runtime: str = ""
    created_at: datetime
    last_used_at: datetime
    simulator: Any = Field(default=None, exclude=True, repr=False)


# ---------------------------------------------------------------------------
# HTTP API request bodies
# ---------------------------------------------------------------------------


class CreateSessionRequest(BaseModel):
    device_name: str | None = None
    platform_version: str | None = None
    timeout: float | None = Field(default=None, gt=0, description="Seconds")
    autoboot: bool = True


class InstallAppRequest(BaseModel):
    app_path: str


class BundleRequest(BaseModel):
    bundle_id: str


class TapRequest(BaseModel):
    x: float
    y: float
