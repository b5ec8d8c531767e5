from __future__ import annotations

import struct

import pytest

from pyz21._protocol.framing import xor_checksum
from pyz21._protocol.parsers import decode_message
from pyz21.exceptions import Z21ChecksumError, Z21FrameError
from pyz21.models import (
    BroadcastFlags,
    BroadcastFlagsInfo,
    DrivingDirection,
    EmergencyStop,
    FirmwareVersion,
    HardwareInfo,
    HardwareType,
    LocoInfo,
    LocoMode,
    LocoModeInfo,
    LocomotiveProtocol,
    LocoSlotInfo,
    LockState,
    NativeSpeedSteps,
    RailComData,
    RBusData,
    SerialNumber,
    SpeedSteps,
    SystemState,
    TrackPowerInfo,
    TrackPowerState,
    TurnoutInfo,
    TurnoutMode,
    TurnoutModeInfo,
    TurnoutState,
    UnknownCommand,
    Z21Code,
)

FW_1_41 = FirmwareVersion(major=1, minor=41)
FW_1_42 = FirmwareVersion(major=1, minor=42)
FW_1_43 = FirmwareVersion(major=1, minor=43)


def _frame(header: int, payload: bytes) -> bytes:
    return struct.pack("<HH", 4 + len(payload), header) + payload


def _xbus(payload: bytes) -> bytes:
    return _frame(0x40, payload + bytes([xor_checksum(payload, 0)]))


def _loco_info(address: int, *data: int) -> bytes:
    msb = (address >> 8) | (0xC0 if address >= 128 else 0)
    return _xbus(bytes([0xEF, msb, address & 0xFF, *data]))


# ---- LAN messages ----


def test_serial_number() -> None:
    message = decode_message(_frame(0x10, struct.pack("<I", 0x12345678)))
    assert message == SerialNumber(value=0x12345678)


def test_code() -> None:
    assert decode_message(_frame(0x18, b"\x02")) == Z21Code(lock_state=LockState.UNLOCKED)


def test_hardware_info_decodes_bcd_firmware() -> None:
    message = decode_message(bytes.fromhex("0C001A00" "01020000" "43010000"))
    assert isinstance(message, HardwareInfo)
    assert message.hardware_type is HardwareType.Z21_NEW
    assert message.firmware == (1, 43)
    assert str(message.firmware) == "V1.43"


def test_hardware_info_rejects_non_decimal_firmware() -> None:
    with pytest.raises(Z21FrameError):
        decode_message(bytes.fromhex("0C001A00" "01020000" "A3010000"))


def test_hardware_info_unknown_type() -> None:
    message = decode_message(bytes.fromhex("0C001A00" "99990000" "20010000"))
    assert isinstance(message, HardwareInfo)
    assert message.hardware_type is HardwareType.UNKNOWN
    assert message.firmware == (1, 20)


def test_broadcast_flags() -> None:
    message = decode_message(_frame(0x51, struct.pack("<I", 0x00010101)))
    assert message == BroadcastFlagsInfo(
        flags=BroadcastFlags.BASIC | BroadcastFlags.SYSTEM_STATE | BroadcastFlags.ALL_LOCO_INFO
    )


def test_loco_and_turnout_mode_replies() -> None:
    assert decode_message(_frame(0x60, bytes.fromhex("000301"))) == LocoModeInfo(address=3, mode=LocoMode.MM)
    assert decode_message(_frame(0x70, bytes.fromhex("010000"))) == TurnoutModeInfo(
        address=256, mode=TurnoutMode.DCC
    )


def test_rbus_data() -> None:
    status = bytes([0, 0, 0b101, 0, 0, 0, 0, 0, 0, 0])
    message = decode_message(_frame(0x80, bytes([1]) + status))
    assert isinstance(message, RBusData)
    assert message.group_index == 1
    assert message.is_sensor_active(13, 1)
    assert not message.is_sensor_active(13, 2)
    assert message.is_sensor_active(13, 3)
    assert not message.is_sensor_active(3, 1)
    assert not message.is_sensor_active(13, 9)


def _system_state_payload(capabilities: int | None = None) -> bytes:
    payload = struct.pack("<6h", -5, 0, 90, 35, 18000, 5000) + bytes([0x02, 0x00])
    if capabilities is not None:
        payload += bytes([0x00, capabilities])
    return payload


def test_system_state_with_capabilities() -> None:
    message = decode_message(_frame(0x84, _system_state_payload(0x0B)), FW_1_42)
    assert isinstance(message, SystemState)
    assert message.main_current == -5
    assert message.temperature == 35
    assert message.supply_voltage == 18000
    assert message.is_track_voltage_off
    assert not message.is_emergency_stop
    assert message.capabilities == 0x0B
    assert message.has_capability(SystemState.CAPABILITY_RAILCOM)
    assert not message.has_capability(SystemState.CAPABILITY_LOCO_CMDS)


def test_system_state_capabilities_gated_by_firmware() -> None:
    message = decode_message(_frame(0x84, _system_state_payload(0x0B)), FW_1_41)
    assert isinstance(message, SystemState)
    assert message.capabilities is None
    assert not message.has_capability(SystemState.CAPABILITY_DCC)


def test_system_state_short_frame_has_no_capabilities() -> None:
    message = decode_message(_frame(0x84, _system_state_payload()), FW_1_43)
    assert isinstance(message, SystemState)
    assert message.capabilities is None


def test_railcom_data() -> None:
    payload = struct.pack("<HIH", 3, 100, 2) + bytes([0x00, 0x05, 42, 99, 0x00])
    message = decode_message(_frame(0x88, payload))
    assert message == RailComData(
        loco_address=3, receive_counter=100, error_counter=2, options=0x05, speed=42, qos=99
    )
    assert isinstance(message, RailComData)
    assert message.has_speed1
    assert not message.has_speed2
    assert message.has_qos


def test_unknown_header_is_ignored() -> None:
    assert decode_message(bytes.fromhex("04009900")) is None


def test_too_short_frame_raises() -> None:
    with pytest.raises(Z21FrameError):
        decode_message(_frame(0x10, b"\x01\x02"))
    with pytest.raises(Z21FrameError):
        decode_message(b"\x02\x00")


# ---- Loco slot info ----


def _slot_frame(slot: int, address: int, raw_speed: int, db4: int, steps_code: int) -> bytes:
    data = bytearray(24)
    struct.pack_into("<HH", data, 0, 24, 0xAF)
    data[7] = slot
    struct.pack_into("<H", data, 9, address)
    data[12] = raw_speed
    data[14] = db4
    data[18] = steps_code
    return bytes(data)


def test_loco_slot_info_dcc128() -> None:
    message = decode_message(_slot_frame(2, 3, 64, 0x30, 9))
    assert isinstance(message, LocoSlotInfo)
    assert message.slot_number == 2
    info = message.loco_info
    assert info.address == 3
    assert info.native_speed_steps is NativeSpeedSteps.STEPS128
    assert info.native_speed == 64
    assert info.current_speed == 63
    # Bit 0x20 of DB4 set means reverse.
    assert info.direction is DrivingDirection.REVERSE
    assert info.functions[0]


def test_loco_slot_info_forward_and_motorola() -> None:
    message = decode_message(_slot_frame(5, 24, 40, 0x00, 83), FW_1_43)
    assert isinstance(message, LocoSlotInfo)
    info = message.loco_info
    assert info.direction is DrivingDirection.FORWARD
    assert info.mode is LocoMode.MM
    assert info.native_speed_steps is NativeSpeedSteps.STEPS28
    assert info.native_speed == 10
    assert info.protocol is LocomotiveProtocol.MM2_14


def test_empty_loco_slot_is_ignored() -> None:
    assert decode_message(_slot_frame(1, 0, 0, 0, 9)) is None


# ---- X-Bus messages ----


def test_track_power_on() -> None:
    assert decode_message(bytes.fromhex("07004000610160")) == TrackPowerInfo(state=TrackPowerState.ON)


def test_track_power_short_circuit() -> None:
    assert decode_message(_xbus(b"\x61\x08")) == TrackPowerInfo(state=TrackPowerState.SHORT_CIRCUIT)


def test_track_power_bad_checksum() -> None:
    with pytest.raises(Z21ChecksumError) as excinfo:
        decode_message(bytes.fromhex("07004000610161"))
    assert excinfo.value.expected == 0x60
    assert excinfo.value.received == 0x61


def test_unknown_command_reply() -> None:
    assert decode_message(_xbus(b"\x61\x82")) == UnknownCommand()


def test_emergency_stop() -> None:
    assert decode_message(bytes.fromhex("07004000810081")) == EmergencyStop()


def test_turnout_info() -> None:
    assert decode_message(_xbus(b"\x43\x00\x04\x02")) == TurnoutInfo(address=4, state=TurnoutState.POSITION2)
    assert decode_message(_xbus(b"\x43\x00\x04\x03")) == TurnoutInfo(address=4, state=TurnoutState.INVALID)


def test_turnout_info_bad_checksum() -> None:
    with pytest.raises(Z21ChecksumError):
        decode_message(bytes.fromhex("0900400043000402ff"))


def test_firmware_version() -> None:
    assert decode_message(_xbus(b"\xf3\x0a\x01\x43")) == FirmwareVersion(major=1, minor=43)


def test_unhandled_xbus_header_is_ignored() -> None:
    assert decode_message(_xbus(b"\x99\x00\x00")) is None


# ---- Loco info ----


def test_loco_info_dcc128_with_extended_functions() -> None:
    frame = _loco_info(3, 0x04, 0x80 | 51, 0x11, 0x01, 0x00, 0x80, 0x04)
    info = decode_message(frame, FW_1_43)
    assert isinstance(info, LocoInfo)
    assert info.address == 3
    assert info.mode is LocoMode.DCC
    assert info.protocol is LocomotiveProtocol.DCC128
    assert info.display_protocol == "DCC128"
    assert info.native_speed_steps is NativeSpeedSteps.STEPS128
    assert info.speed_steps is SpeedSteps.STEPS128
    assert info.speed_steps_numeric == 126
    assert info.native_speed == 51
    assert info.current_speed == 50
    assert info.direction is DrivingDirection.FORWARD
    assert not info.is_busy
    active = [index for index, on in enumerate(info.functions) if on]
    assert active == [0, 1, 5, 28, 31]


def test_loco_info_without_firmware_skips_db8_and_mode() -> None:
    frame = _loco_info(3, 0x0C, 51, 0x00, 0x00, 0x00, 0x00, 0x04)
    info = decode_message(frame)
    assert isinstance(info, LocoInfo)
    assert info.is_busy
    assert info.mode is None
    assert info.protocol is None
    assert info.display_protocol is None
    assert info.direction is DrivingDirection.REVERSE
    assert not any(info.functions)


def test_loco_info_long_address() -> None:
    info = decode_message(_loco_info(1000, 0x04, 0, 0, 0, 0, 0), FW_1_41)
    assert isinstance(info, LocoInfo)
    assert info.address == 1000


def test_loco_info_motorola_bit_needs_firmware_1_43() -> None:
    frame = _loco_info(24, 0x12, 0x16, 0, 0, 0, 0, 0)

    mm = decode_message(frame, FW_1_43)
    assert isinstance(mm, LocoInfo)
    assert mm.mode is LocoMode.MM
    assert mm.current_speed == 5
    assert mm.speed_steps is SpeedSteps.STEPS14
    assert mm.protocol is LocomotiveProtocol.MM2_14

    older = decode_message(frame, FW_1_42)
    assert isinstance(older, LocoInfo)
    assert older.mode is None
    assert older.current_speed == 10
    assert older.speed_steps is SpeedSteps.STEPS28


def test_loco_info_bad_checksum() -> None:
    frame = bytearray(_loco_info(3, 0x04, 0, 0, 0, 0, 0))
    frame[-1] ^= 0xFF
    with pytest.raises(Z21ChecksumError):
        decode_message(bytes(frame))


def test_loco_info_too_short() -> None:
    with pytest.raises(Z21FrameError):
        decode_message(_xbus(b"\xef\x00\x03\x04"))
