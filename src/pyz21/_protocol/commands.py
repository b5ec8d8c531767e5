"""Outbound command encoding.

Every builder returns the complete message, ready for ``sendto``.  The
length and header fields are little-endian; loco and turnout addresses
inside X-Bus payloads are MSB first.  X-Bus commands end with the XOR of
their payload.
"""

from __future__ import annotations

import struct

from pyz21._constants import (
    EXTENDED_ADDRESS_FLAGS,
    EXTENDED_ADDRESS_MIN,
    HEADER_GET_BROADCAST_FLAGS,
    HEADER_GET_CODE,
    HEADER_GET_HWINFO,
    HEADER_GET_LOCO_MODE,
    HEADER_GET_LOCO_SLOT_INFO,
    HEADER_GET_SERIAL_NUMBER,
    HEADER_GET_TURNOUT_MODE,
    HEADER_LOGOFF,
    HEADER_RAILCOM_GET_DATA,
    HEADER_RMBUS_GET_DATA,
    HEADER_SET_BROADCAST_FLAGS,
    HEADER_SET_LOCO_MODE,
    HEADER_SET_TURNOUT_MODE,
    HEADER_SYSTEM_STATE_GET_DATA,
    HEADER_XBUS,
    MAX_FUNCTION_INDEX,
    MAX_LOCO_ADDRESS,
    XDB0_GET_LOCO_INFO,
    XDB0_SET_LOCO_FUNCTION,
    XHEADER_GET_LOCO_INFO,
    XHEADER_SET_LOCO,
    XHEADER_SET_TURNOUT,
)
from pyz21._protocol.framing import xor_checksum
from pyz21.models import (
    BroadcastFlags,
    DrivingDirection,
    FunctionAction,
    LocoMode,
    NativeSpeedSteps,
    TurnoutMode,
    TurnoutPosition,
)

MAX_ACCESSORY_ADDRESS = 0xFFFF
RAILCOM_TYPE_LOCO_ADDRESS = 0x01

# ------------------------------------------------------------------
# Frame helpers
# ------------------------------------------------------------------


def _frame(header: int, payload: bytes = b"") -> bytes:
    return struct.pack("<HH", 4 + len(payload), header) + payload


def _xbus(payload: bytes) -> bytes:
    return _frame(HEADER_XBUS, payload + bytes([xor_checksum(payload, 0)]))


def _check_loco_address(address: int) -> None:
    if not 0 <= address <= MAX_LOCO_ADDRESS:
        raise ValueError(f"Loco address must be between 0 and {MAX_LOCO_ADDRESS}, got {address}")


def _check_accessory_address(address: int) -> None:
    if not 0 <= address <= MAX_ACCESSORY_ADDRESS:
        raise ValueError(f"Turnout address must be between 0 and {MAX_ACCESSORY_ADDRESS}, got {address}")


def _check_byte(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must be between 0 and 255, got {value}")


def _loco_address_bytes(address: int) -> bytes:
    """Address as ``Adr_MSB, Adr_LSB`` with the flag bits for long addresses."""
    _check_loco_address(address)
    msb = (address >> 8) & 0xFF
    if address >= EXTENDED_ADDRESS_MIN:
        msb |= EXTENDED_ADDRESS_FLAGS
    return bytes([msb, address & 0xFF])


# ------------------------------------------------------------------
# System, status, versions
# ------------------------------------------------------------------


def get_serial_number() -> bytes:
    return _frame(HEADER_GET_SERIAL_NUMBER)


def get_code() -> bytes:
    return _frame(HEADER_GET_CODE)


def get_hardware_info() -> bytes:
    return _frame(HEADER_GET_HWINFO)


def logoff() -> bytes:
    return _frame(HEADER_LOGOFF)


def get_broadcast_flags() -> bytes:
    return _frame(HEADER_GET_BROADCAST_FLAGS)


def set_broadcast_flags(flags: BroadcastFlags | int) -> bytes:
    return _frame(HEADER_SET_BROADCAST_FLAGS, struct.pack("<I", int(flags) & 0xFFFFFFFF))


def get_system_state() -> bytes:
    return _frame(HEADER_SYSTEM_STATE_GET_DATA)


def get_firmware_version() -> bytes:
    return _xbus(bytes([0xF1, 0x0A]))


def set_track_power_on() -> bytes:
    return _xbus(bytes([0x21, 0x81]))


def set_track_power_off() -> bytes:
    return _xbus(bytes([0x21, 0x80]))


def set_emergency_stop() -> bytes:
    return _xbus(bytes([0x80]))


# ------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------


def get_loco_mode(address: int) -> bytes:
    _check_loco_address(address)
    return _frame(HEADER_GET_LOCO_MODE, struct.pack(">H", address))


def set_loco_mode(address: int, mode: LocoMode) -> bytes:
    _check_loco_address(address)
    if mode == LocoMode.UNKNOWN:
        raise ValueError("Loco mode must be DCC or MM")
    return _frame(HEADER_SET_LOCO_MODE, struct.pack(">HB", address, int(mode)))


def get_turnout_mode(address: int) -> bytes:
    _check_accessory_address(address)
    return _frame(HEADER_GET_TURNOUT_MODE, struct.pack(">H", address))


def set_turnout_mode(address: int, mode: TurnoutMode) -> bytes:
    _check_accessory_address(address)
    if mode == TurnoutMode.UNKNOWN:
        raise ValueError("Turnout mode must be DCC or MM")
    return _frame(HEADER_SET_TURNOUT_MODE, struct.pack(">HB", address, int(mode)))


# ------------------------------------------------------------------
# Driving
# ------------------------------------------------------------------


def get_loco_info(address: int) -> bytes:
    return _xbus(bytes([XHEADER_GET_LOCO_INFO, XDB0_GET_LOCO_INFO]) + _loco_address_bytes(address))


def set_loco_drive(
    address: int,
    native_speed: int,
    native_steps: NativeSpeedSteps,
    direction: DrivingDirection,
) -> bytes:
    """``LAN_X_SET_LOCO_DRIVE``.

    Parameters
    ----------
    address : int
        Locomotive address.
    native_speed : int
        Speed already converted to the native code of ``native_steps``.
    native_steps : NativeSpeedSteps
        Speed-step mode of the decoder.
    direction : DrivingDirection
        Driving direction; anything but ``FORWARD`` drives in reverse.
    """
    if native_steps == NativeSpeedSteps.UNKNOWN:
        raise ValueError("Cannot drive a loco with unknown speed steps")
    speed_byte = native_speed & 0x7F
    if direction == DrivingDirection.FORWARD:
        speed_byte |= 0x80
    payload = bytes([XHEADER_SET_LOCO, 0x10 | int(native_steps)]) + _loco_address_bytes(address)
    return _xbus(payload + bytes([speed_byte]))


def set_loco_function(address: int, index: int, action: FunctionAction = FunctionAction.TOGGLE) -> bytes:
    """``LAN_X_SET_LOCO_FUNCTION`` for a single function ``F<index>``."""
    if not 0 <= index <= MAX_FUNCTION_INDEX:
        raise ValueError(f"Function index must be between 0 and {MAX_FUNCTION_INDEX}, got {index}")
    if action == FunctionAction.UNKNOWN:
        raise ValueError("Function action must be OFF, ON or TOGGLE")
    payload = bytes([XHEADER_SET_LOCO, XDB0_SET_LOCO_FUNCTION]) + _loco_address_bytes(address)
    return _xbus(payload + bytes([int(action) | (index & 0x3F)]))


def get_loco_slot_info(slot: int) -> bytes:
    _check_byte("Slot", slot)
    return _frame(HEADER_GET_LOCO_SLOT_INFO, bytes([0x00, slot]))


# ------------------------------------------------------------------
# Switching
# ------------------------------------------------------------------


def set_turnout(address: int, position: TurnoutPosition, activate: bool) -> bytes:
    """``LAN_X_SET_TURNOUT``: ``10000A0P`` with output ``P`` and activation ``A``.

    A complete switching operation sends this twice, first with
    ``activate=True`` and then with ``activate=False``.
    """
    _check_accessory_address(address)
    if position == TurnoutPosition.UNKNOWN:
        raise ValueError("Turnout position must be POSITION1 or POSITION2")
    db2 = 0x80 | (int(position) & 0x01)
    if activate:
        db2 |= 0x08
    return _xbus(bytes([XHEADER_SET_TURNOUT]) + struct.pack(">H", address) + bytes([db2]))


# ------------------------------------------------------------------
# Feedback
# ------------------------------------------------------------------


def get_railcom_data_next() -> bytes:
    """``LAN_RAILCOM_GETDATA`` without payload: the next entry of the RailCom list."""
    return _frame(HEADER_RAILCOM_GET_DATA)


def get_railcom_data(address: int) -> bytes:
    _check_loco_address(address)
    return _frame(HEADER_RAILCOM_GET_DATA, struct.pack("<BH", RAILCOM_TYPE_LOCO_ADDRESS, address))


def get_rbus_data(group: int) -> bytes:
    _check_byte("R-Bus group", group)
    return _frame(HEADER_RMBUS_GET_DATA, bytes([group]))
