"""pyz21 - Async Python client for the Z21 LAN protocol of Roco/Fleischmann command stations."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyz21")
except PackageNotFoundError:
    __version__ = "0+local"
from pyz21.client import Z21Client, Z21Event
from pyz21.config import Z21Config
from pyz21.exceptions import (
    Z21ChecksumError,
    Z21ConfigError,
    Z21Error,
    Z21FrameError,
    Z21TransportError,
)
from pyz21.models import (
    BroadcastFlags,
    ConnectionState,
    ConnectionStateChange,
    DrivingDirection,
    FirmwareVersion,
    FunctionAction,
    HardwareInfo,
    HardwareType,
    LocoInfo,
    LocoMode,
    LocoModeInfo,
    LocoSlotInfo,
    LocomotiveProtocol,
    NativeSpeedSteps,
    RailComData,
    RBusData,
    SpeedSteps,
    SystemState,
    TrackPowerInfo,
    TrackPowerState,
    TurnoutInfo,
    TurnoutMode,
    TurnoutPosition,
    TurnoutState,
)

__all__ = [
    "__version__",
    "BroadcastFlags",
    "ConnectionState",
    "ConnectionStateChange",
    "DrivingDirection",
    "FirmwareVersion",
    "FunctionAction",
    "HardwareInfo",
    "HardwareType",
    "LocoInfo",
    "LocoMode",
    "LocoModeInfo",
    "LocoSlotInfo",
    "LocomotiveProtocol",
    "NativeSpeedSteps",
    "RBusData",
    "RailComData",
    "SpeedSteps",
    "SystemState",
    "TrackPowerInfo",
    "TrackPowerState",
    "TurnoutInfo",
    "TurnoutMode",
    "TurnoutPosition",
    "TurnoutState",
    "Z21ChecksumError",
    "Z21Client",
    "Z21Config",
    "Z21ConfigError",
    "Z21Error",
    "Z21Event",
    "Z21FrameError",
    "Z21TransportError",
]
