"""Command station, connection and system state models."""

from __future__ import annotations

import enum
import functools
import time
from typing import Any, ClassVar

from pydantic import Field

from pyz21.models._base import Z21BaseModel, Z21Enum

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class HardwareType(Z21Enum):
    """Hardware id reported by ``LAN_GET_HWINFO``."""

    UNKNOWN = 0
    Z21_OLD = 0x00000200  # black Z21, hardware variant from 2012
    Z21_NEW = 0x00000201  # black Z21, hardware variant from 2013
    SMARTRAIL = 0x00000202
    Z21_SMALL = 0x00000203  # white z21 starter set
    Z21_START = 0x00000204  # z21 start starter set
    SINGLE_BOOSTER = 0x00000205
    DUAL_BOOSTER = 0x00000206
    Z21_XL = 0x00000211
    XL_BOOSTER = 0x00000212
    Z21_SWITCH_DECODER = 0x00000301
    Z21_SIGNAL_DECODER = 0x00000302


class TrackPowerState(Z21Enum):
    UNKNOWN = -1
    OFF = 0
    ON = 1
    PROGRAMMING_MODE = 2
    SHORT_CIRCUIT = 8


class LockState(Z21Enum):
    """Feature lock of z21 start devices (``LAN_GET_CODE``)."""

    UNKNOWN = -1
    NO_LOCK = 0x00
    LOCKED = 0x01  # "z21 start": driving and switching blocked
    UNLOCKED = 0x02  # "z21 start": driving and switching permitted


class BroadcastFlags(enum.IntFlag):
    """Broadcast categories the command station sends to this client."""

    NONE = 0
    BASIC = 0x00000001
    RBUS = 0x00000002
    RAILCOM_SUBSCRIBED = 0x00000004
    FAST_CLOCK = 0x00000010
    SYSTEM_STATE = 0x00000100
    ALL_LOCO_INFO = 0x00010000
    CAN_BOOSTER = 0x00020000
    ALL_RAILCOM = 0x00040000
    LOCONET_GENERAL = 0x01000000
    LOCONET_LOCOS = 0x02000000
    LOCONET_SWITCHES = 0x04000000
    LOCONET_DETECTOR = 0x08000000


class ConnectionState(enum.StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    LOST = "lost"


# ------------------------------------------------------------------
# Records
# ------------------------------------------------------------------


@functools.total_ordering
class FirmwareVersion(Z21BaseModel):
    """Firmware version, ordered by ``(major, minor)``.

    Compares against other versions and against plain ``(major, minor)``
    tuples.
    """

    major: int = Field(ge=0)
    minor: int = Field(ge=0)

    @classmethod
    def from_bcd(cls, major: int, minor: int) -> FirmwareVersion:
        """Build a version from two BCD-encoded bytes.

        Raises
        ------
        ValueError
            If either value contains a non-decimal nibble.
        """
        return cls(major=int(f"{major:X}"), minor=int(f"{minor:02X}"))

    def as_tuple(self) -> tuple[int, int]:
        return (self.major, self.minor)

    def at_least(self, version: tuple[int, int]) -> bool:
        return self.as_tuple() >= version

    def __lt__(self, other: Any) -> bool:
        if isinstance(other, FirmwareVersion):
            return self.as_tuple() < other.as_tuple()
        if isinstance(other, tuple):
            return self.as_tuple() < other
        return NotImplemented

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FirmwareVersion):
            return self.as_tuple() == other.as_tuple()
        if isinstance(other, tuple):
            return self.as_tuple() == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.as_tuple())

    def __str__(self) -> str:
        return f"V{self.major}.{self.minor:02d}"


class HardwareInfo(Z21BaseModel):
    """Hardware type and firmware captured during the connect handshake."""

    hardware_type: HardwareType = HardwareType.UNKNOWN
    firmware: FirmwareVersion


class SerialNumber(Z21BaseModel):
    value: int = Field(ge=0)


class Z21Code(Z21BaseModel):
    lock_state: LockState = LockState.UNKNOWN


class TrackPowerInfo(Z21BaseModel):
    state: TrackPowerState = TrackPowerState.UNKNOWN


class EmergencyStop(Z21BaseModel):
    """``LAN_X_BC_STOPPED``: all locos were stopped."""


class UnknownCommand(Z21BaseModel):
    """``LAN_X_UNKNOWN_COMMAND``: the command station rejected a request."""


class BroadcastFlagsInfo(Z21BaseModel):
    flags: BroadcastFlags = BroadcastFlags.NONE


class SystemState(Z21BaseModel):
    """``LAN_SYSTEMSTATE_DATACHANGED`` payload.

    Currents are in mA, voltages in mV, temperature in degrees Celsius.
    ``capabilities`` is only reported by firmware 1.42 and later.
    """

    CENTRAL_STATE_EMERGENCY_STOP: ClassVar[int] = 0x01
    CENTRAL_STATE_TRACK_VOLTAGE_OFF: ClassVar[int] = 0x02
    CENTRAL_STATE_SHORT_CIRCUIT: ClassVar[int] = 0x04
    CENTRAL_STATE_PROGRAMMING_MODE: ClassVar[int] = 0x20

    CENTRAL_STATE_EX_HIGH_TEMPERATURE: ClassVar[int] = 0x01
    CENTRAL_STATE_EX_POWER_LOST: ClassVar[int] = 0x02
    CENTRAL_STATE_EX_SHORT_CIRCUIT_EXTERNAL: ClassVar[int] = 0x04
    CENTRAL_STATE_EX_SHORT_CIRCUIT_INTERNAL: ClassVar[int] = 0x08
    CENTRAL_STATE_EX_RCN213: ClassVar[int] = 0x20

    CAPABILITY_DCC: ClassVar[int] = 0x01
    CAPABILITY_MM: ClassVar[int] = 0x02
    CAPABILITY_RAILCOM: ClassVar[int] = 0x08
    CAPABILITY_LOCO_CMDS: ClassVar[int] = 0x10
    CAPABILITY_ACCESSORY_CMDS: ClassVar[int] = 0x20
    CAPABILITY_DETECTOR_CMDS: ClassVar[int] = 0x40
    CAPABILITY_NEEDS_UNLOCK_CODE: ClassVar[int] = 0x80

    main_current: int = 0
    prog_current: int = 0
    filtered_main_current: int = 0
    temperature: int = 0
    supply_voltage: int = 0
    vcc_voltage: int = 0
    central_state: int = 0
    central_state_ex: int = 0
    capabilities: int | None = None

    @property
    def is_emergency_stop(self) -> bool:
        return bool(self.central_state & self.CENTRAL_STATE_EMERGENCY_STOP)

    @property
    def is_track_voltage_off(self) -> bool:
        return bool(self.central_state & self.CENTRAL_STATE_TRACK_VOLTAGE_OFF)

    @property
    def is_short_circuit(self) -> bool:
        return bool(self.central_state & self.CENTRAL_STATE_SHORT_CIRCUIT)

    @property
    def is_programming_mode(self) -> bool:
        return bool(self.central_state & self.CENTRAL_STATE_PROGRAMMING_MODE)

    @property
    def is_high_temperature(self) -> bool:
        return bool(self.central_state_ex & self.CENTRAL_STATE_EX_HIGH_TEMPERATURE)

    @property
    def is_power_lost(self) -> bool:
        return bool(self.central_state_ex & self.CENTRAL_STATE_EX_POWER_LOST)

    def has_capability(self, capability: int) -> bool:
        """Whether a ``CAPABILITY_*`` bit is set; ``False`` when not reported."""
        if self.capabilities is None:
            return False
        return bool(self.capabilities & capability)


class ConnectionStateChange(Z21BaseModel):
    """Published on every connection state transition."""

    state: ConnectionState
    previous: ConnectionState
    host: str = ""
    timestamp: float = Field(default_factory=time.time)
