"""Typed records for decoded Z21 messages."""

from pyz21.models._base import Z21BaseModel, Z21Enum
from pyz21.models.speed import DrivingDirection, LocoMode, LocomotiveProtocol, NativeSpeedSteps, SpeedSteps
from pyz21.models.system import (
    BroadcastFlags,
    BroadcastFlagsInfo,
    ConnectionState,
    ConnectionStateChange,
    EmergencyStop,
    FirmwareVersion,
    HardwareInfo,
    HardwareType,
    LockState,
    SerialNumber,
    SystemState,
    TrackPowerInfo,
    TrackPowerState,
    UnknownCommand,
    Z21Code,
)
from pyz21.models.feedback import RailComData, RBusData
from pyz21.models.turnout import TurnoutInfo, TurnoutMode, TurnoutModeInfo, TurnoutPosition, TurnoutState
from pyz21.models.loco import FunctionAction, LocoInfo, LocoModeInfo, LocoSlotInfo

__all__ = [
    "BroadcastFlags",
    "BroadcastFlagsInfo",
    "ConnectionState",
    "ConnectionStateChange",
    "DrivingDirection",
    "EmergencyStop",
    "FirmwareVersion",
    "FunctionAction",
    "HardwareInfo",
    "HardwareType",
    "LocoInfo",
    "LocoMode",
    "LocoModeInfo",
    "LocoSlotInfo",
    "LocomotiveProtocol",
    "LockState",
    "NativeSpeedSteps",
    "RBusData",
    "RailComData",
    "SerialNumber",
    "SpeedSteps",
    "SystemState",
    "TrackPowerInfo",
    "TrackPowerState",
    "TurnoutInfo",
    "TurnoutMode",
    "TurnoutModeInfo",
    "TurnoutPosition",
    "TurnoutState",
    "UnknownCommand",
    "Z21BaseModel",
    "Z21Code",
    "Z21Enum",
]
