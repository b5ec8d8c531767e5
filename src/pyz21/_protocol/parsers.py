"""Inbound message parsing.

:func:`decode_message` routes one framed message by its header (and
X-header for X-Bus messages) to a parser that builds the typed record.
Parsers validate the minimum length and, for X-Bus messages, the trailing
XOR byte.  Malformed frames raise :class:`~pyz21.exceptions.Z21FrameError`
or :class:`~pyz21.exceptions.Z21ChecksumError`; the caller decides what
to do with them.
"""

from __future__ import annotations

import logging
import math
import struct
from collections.abc import Callable

from pyz21 import speed_steps
from pyz21._constants import (
    FIRMWARE_EXTENDED_INFO,
    HEADER_GET_BROADCAST_FLAGS,
    HEADER_GET_CODE,
    HEADER_GET_HWINFO,
    HEADER_GET_LOCO_MODE,
    HEADER_GET_LOCO_SLOT_INFO,
    HEADER_GET_SERIAL_NUMBER,
    HEADER_GET_TURNOUT_MODE,
    HEADER_RAILCOM_DATA_CHANGED,
    HEADER_RMBUS_DATA_CHANGED,
    HEADER_SYSTEM_STATE_CHANGED,
    HEADER_XBUS,
    XDB0_UNKNOWN_COMMAND,
    XHEADER_FIRMWARE_VERSION,
    XHEADER_LOCO_INFO,
    XHEADER_STOPPED,
    XHEADER_TRACK_POWER,
    XHEADER_TURNOUT_INFO,
)
from pyz21._protocol.framing import frame_header, xor_checksum
from pyz21.exceptions import Z21ChecksumError, Z21FrameError
from pyz21.models import (
    BroadcastFlags,
    BroadcastFlagsInfo,
    EmergencyStop,
    FirmwareVersion,
    HardwareInfo,
    HardwareType,
    LocoInfo,
    LocoMode,
    LocoModeInfo,
    LocoSlotInfo,
    LockState,
    RailComData,
    RBusData,
    SerialNumber,
    SystemState,
    TrackPowerInfo,
    TrackPowerState,
    TurnoutInfo,
    TurnoutMode,
    TurnoutModeInfo,
    TurnoutState,
    UnknownCommand,
    Z21BaseModel,
    Z21Code,
)

_logger = logging.getLogger(__name__)

Parser = Callable[[bytes, FirmwareVersion | None], Z21BaseModel | None]


# ------------------------------------------------------------------
# Validation helpers
# ------------------------------------------------------------------


def _require_length(frame: bytes, minimum: int, what: str) -> None:
    if len(frame) < minimum:
        raise Z21FrameError(
            f"{what} frame too short: expected at least {minimum} bytes, got {len(frame)}",
            header=frame_header(frame) if len(frame) >= 4 else None,
        )


def _require_checksum(frame: bytes, index: int, what: str) -> None:
    """Check ``frame[index]`` against the XOR of bytes 4 up to ``index``."""
    expected = xor_checksum(frame, 4, index)
    received = frame[index]
    if expected != received:
        raise Z21ChecksumError(
            f"{what} frame has invalid checksum: received 0x{received:02X}, calculated 0x{expected:02X}",
            header=frame_header(frame),
            expected=expected,
            received=received,
        )


def _firmware_at_least(firmware: FirmwareVersion | None, version: tuple[int, int]) -> bool:
    return firmware is not None and firmware.at_least(version)


def _firmware_from_bcd(major: int, minor: int, frame: bytes) -> FirmwareVersion:
    try:
        return FirmwareVersion.from_bcd(major, minor)
    except ValueError as exc:
        raise Z21FrameError(
            f"Firmware version is not valid BCD: 0x{major:X}.0x{minor:02X}",
            header=frame_header(frame),
        ) from exc


# ------------------------------------------------------------------
# LAN messages
# ------------------------------------------------------------------


def parse_serial_number(frame: bytes, firmware: FirmwareVersion | None = None) -> SerialNumber:
    _require_length(frame, 8, "Serial number")
    return SerialNumber(value=struct.unpack_from("<I", frame, 4)[0])


def parse_code(frame: bytes, firmware: FirmwareVersion | None = None) -> Z21Code:
    _require_length(frame, 5, "Z21 code")
    return Z21Code(lock_state=LockState(frame[4]))


def parse_hardware_info(frame: bytes, firmware: FirmwareVersion | None = None) -> HardwareInfo:
    _require_length(frame, 12, "Hardware info")
    hw_type, fw_value = struct.unpack_from("<II", frame, 4)
    return HardwareInfo(
        hardware_type=HardwareType(hw_type),
        firmware=_firmware_from_bcd(fw_value >> 8, fw_value & 0xFF, frame),
    )


def parse_broadcast_flags(frame: bytes, firmware: FirmwareVersion | None = None) -> BroadcastFlagsInfo:
    _require_length(frame, 8, "Broadcast flags")
    return BroadcastFlagsInfo(flags=BroadcastFlags(struct.unpack_from("<I", frame, 4)[0]))


def parse_loco_mode(frame: bytes, firmware: FirmwareVersion | None = None) -> LocoModeInfo:
    _require_length(frame, 7, "Loco mode")
    address = struct.unpack_from(">H", frame, 4)[0]
    return LocoModeInfo(address=address, mode=LocoMode(frame[6]))


def parse_turnout_mode(frame: bytes, firmware: FirmwareVersion | None = None) -> TurnoutModeInfo:
    _require_length(frame, 7, "Turnout mode")
    address = struct.unpack_from(">H", frame, 4)[0]
    return TurnoutModeInfo(address=address, mode=TurnoutMode(frame[6]))


def parse_rbus_data(frame: bytes, firmware: FirmwareVersion | None = None) -> RBusData:
    _require_length(frame, 15, "R-Bus data")
    return RBusData(group_index=frame[4], feedback_status=bytes(frame[5:15]))


def parse_system_state(frame: bytes, firmware: FirmwareVersion | None = None) -> SystemState:
    """``LAN_SYSTEMSTATE_DATACHANGED``.

    The capabilities byte at offset 19 is only read for firmware 1.42 or
    later and only when the frame actually contains it.
    """
    _require_length(frame, 18, "System state")
    main, prog, filtered, temperature, supply, vcc = struct.unpack_from("<6h", frame, 4)
    capabilities: int | None = None
    if _firmware_at_least(firmware, FIRMWARE_EXTENDED_INFO) and len(frame) >= 20:
        capabilities = frame[19]
    return SystemState(
        main_current=main,
        prog_current=prog,
        filtered_main_current=filtered,
        temperature=temperature,
        supply_voltage=supply,
        vcc_voltage=vcc,
        central_state=frame[16],
        central_state_ex=frame[17],
        capabilities=capabilities,
    )


def parse_railcom_data(frame: bytes, firmware: FirmwareVersion | None = None) -> RailComData:
    _require_length(frame, 17, "RailCom data")
    address, receive_counter, error_counter = struct.unpack_from("<HIH", frame, 4)
    # Offset 12 is reserved.
    return RailComData(
        loco_address=address,
        receive_counter=receive_counter,
        error_counter=error_counter,
        options=frame[13],
        speed=frame[14],
        qos=frame[15],
    )


# Native step codes reported in byte 18 of the loco slot record.
_SLOT_DCC14 = 3
_SLOT_DCC28 = 6
_SLOT_DCC128 = 9
_SLOT_MM14 = 67
_SLOT_MM28 = 83
_SLOT_MM128 = 117
_SLOT_MM_FLAG = 0x10


def parse_loco_slot_info(frame: bytes, firmware: FirmwareVersion | None = None) -> LocoSlotInfo | None:
    """Undocumented ``0x00AF`` reply used by the Z21 app for its loco stack.

    The record stores the speed on a 0..127 scale regardless of the step
    mode; it is mapped back to a native code here.  Returns ``None`` for
    empty slots (address 0).
    """
    _require_length(frame, 24, "Loco slot info")
    address = struct.unpack_from("<H", frame, 9)[0]
    if address == 0:
        return None

    slot_number = frame[7]
    raw_speed = frame[12] & 0x7F
    steps_code = frame[18]
    db2 = 0
    speed = 0
    if steps_code == _SLOT_DCC14:
        speed = speed_steps.speed_step_14_reverse(math.ceil(raw_speed / 8.2))
    elif steps_code == _SLOT_DCC28:
        db2 = 2
        speed = speed_steps.speed_step_28_reverse(math.ceil(raw_speed / 4.6))
    elif steps_code == _SLOT_DCC128:
        db2 = 4
        speed = raw_speed
    elif steps_code == _SLOT_MM14:
        db2 = _SLOT_MM_FLAG
        speed = math.floor(raw_speed / 8.2)
    elif steps_code == _SLOT_MM28:
        db2 = 2 | _SLOT_MM_FLAG
        speed = math.ceil(raw_speed / 4.1)
    elif steps_code == _SLOT_MM128:
        db2 = 4 | _SLOT_MM_FLAG
        speed = raw_speed
    else:
        _logger.debug("Unknown speed step code %d in loco slot %d", steps_code, slot_number)

    if not frame[14] & 0x20:
        speed |= 0x80

    loco_info = LocoInfo.from_data_bytes(
        address,
        db2,
        speed,
        frame[14],
        frame[15],
        frame[16],
        frame[17],
        None,
        firmware,
    )
    return LocoSlotInfo(slot_number=slot_number, loco_info=loco_info)


# ------------------------------------------------------------------
# X-Bus messages
# ------------------------------------------------------------------


def parse_track_power(frame: bytes, firmware: FirmwareVersion | None = None) -> TrackPowerInfo | UnknownCommand:
    """``LAN_X_BC_TRACK_POWER_*`` broadcasts, or ``LAN_X_UNKNOWN_COMMAND``."""
    _require_length(frame, 7, "Track power")
    _require_checksum(frame, 6, "Track power")
    if frame[5] == XDB0_UNKNOWN_COMMAND:
        return UnknownCommand()
    return TrackPowerInfo(state=TrackPowerState(frame[5]))


def parse_emergency_stop(frame: bytes, firmware: FirmwareVersion | None = None) -> EmergencyStop:
    _require_length(frame, 7, "Emergency stop")
    _require_checksum(frame, 6, "Emergency stop")
    return EmergencyStop()


def parse_turnout_info(frame: bytes, firmware: FirmwareVersion | None = None) -> TurnoutInfo:
    _require_length(frame, 9, "Turnout info")
    _require_checksum(frame, 8, "Turnout info")
    address = struct.unpack_from(">H", frame, 5)[0]
    return TurnoutInfo(address=address, state=TurnoutState(frame[7] & 0b11))


def parse_loco_info(frame: bytes, firmware: FirmwareVersion | None = None) -> LocoInfo:
    """``LAN_X_LOCO_INFO``.

    The frame length varies with the firmware; the checksum is always the
    last byte.  ``DB8`` (F29-F31) is only read for firmware 1.42 or later.
    """
    _require_length(frame, 14, "Loco info")
    _require_checksum(frame, len(frame) - 1, "Loco info")
    address = ((frame[5] & 0x3F) << 8) | frame[6]
    db8: int | None = None
    if _firmware_at_least(firmware, FIRMWARE_EXTENDED_INFO) and len(frame) >= 15:
        db8 = frame[13]
    return LocoInfo.from_data_bytes(
        address,
        frame[7],
        frame[8],
        frame[9],
        frame[10],
        frame[11],
        frame[12],
        db8,
        firmware,
    )


def parse_firmware_version(frame: bytes, firmware: FirmwareVersion | None = None) -> FirmwareVersion:
    _require_length(frame, 9, "Firmware version")
    _require_checksum(frame, 8, "Firmware version")
    return _firmware_from_bcd(frame[6], frame[7], frame)


_XBUS_PARSERS: dict[int, Parser] = {
    XHEADER_TRACK_POWER: parse_track_power,
    XHEADER_STOPPED: parse_emergency_stop,
    XHEADER_TURNOUT_INFO: parse_turnout_info,
    XHEADER_LOCO_INFO: parse_loco_info,
    XHEADER_FIRMWARE_VERSION: parse_firmware_version,
}


def parse_xbus(frame: bytes, firmware: FirmwareVersion | None = None) -> Z21BaseModel | None:
    _require_length(frame, 7, "X-Bus")
    x_header = frame[4]
    parser = _XBUS_PARSERS.get(x_header)
    if parser is None:
        _logger.info("Unhandled X-Bus message with X-header 0x%02X", x_header)
        return None
    return parser(frame, firmware)


_PARSERS: dict[int, Parser] = {
    HEADER_GET_SERIAL_NUMBER: parse_serial_number,
    HEADER_GET_CODE: parse_code,
    HEADER_GET_HWINFO: parse_hardware_info,
    HEADER_GET_BROADCAST_FLAGS: parse_broadcast_flags,
    HEADER_GET_LOCO_MODE: parse_loco_mode,
    HEADER_GET_TURNOUT_MODE: parse_turnout_mode,
    HEADER_RMBUS_DATA_CHANGED: parse_rbus_data,
    HEADER_SYSTEM_STATE_CHANGED: parse_system_state,
    HEADER_RAILCOM_DATA_CHANGED: parse_railcom_data,
    HEADER_GET_LOCO_SLOT_INFO: parse_loco_slot_info,
    HEADER_XBUS: parse_xbus,
}


def decode_message(frame: bytes, firmware: FirmwareVersion | None = None) -> Z21BaseModel | None:
    """Decode one framed message.

    Parameters
    ----------
    frame : bytes
        A single message as produced by
        :func:`~pyz21._protocol.framing.split_frames`.
    firmware : FirmwareVersion or None
        Firmware of the connected command station; gates optional fields.

    Returns
    -------
    Z21BaseModel or None
        The decoded record, or ``None`` for messages that are ignored
        (unknown header, empty loco slot).

    Raises
    ------
    Z21FrameError
        If the frame is shorter than its header requires.
    Z21ChecksumError
        If the trailing XOR byte does not match.
    """
    _require_length(frame, 4, "Z21")
    header = frame_header(frame)
    parser = _PARSERS.get(header)
    if parser is None:
        _logger.info("Unhandled message with header 0x%04X", header)
        return None
    return parser(frame, firmware)
