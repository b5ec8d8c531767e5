from __future__ import annotations

import pytest

from pyz21._protocol import commands
from pyz21.models import (
    BroadcastFlags,
    DrivingDirection,
    FunctionAction,
    LocoMode,
    NativeSpeedSteps,
    TurnoutMode,
    TurnoutPosition,
)


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        (commands.get_serial_number(), "04001000"),
        (commands.get_code(), "04001800"),
        (commands.get_hardware_info(), "04001a00"),
        (commands.logoff(), "04003000"),
        (commands.get_broadcast_flags(), "04005100"),
        (commands.get_system_state(), "04008500"),
        (commands.get_railcom_data_next(), "04008900"),
        (commands.get_firmware_version(), "07004000f10afb"),
        (commands.set_track_power_on(), "070040002181a0"),
        (commands.set_track_power_off(), "070040002180a1"),
        (commands.set_emergency_stop(), "060040008080"),
    ],
)
def test_fixed_commands(message: bytes, expected: str) -> None:
    assert message == bytes.fromhex(expected)


def test_set_broadcast_flags_is_little_endian() -> None:
    flags = BroadcastFlags.BASIC | BroadcastFlags.SYSTEM_STATE
    assert commands.set_broadcast_flags(flags) == bytes.fromhex("0800500001010000")


def test_get_loco_info_short_and_long_address() -> None:
    assert commands.get_loco_info(3) == bytes.fromhex("09004000e3f0000310")
    # 1000 = 0x03E8, MSB carries the long-address flag bits.
    assert commands.get_loco_info(1000) == bytes.fromhex("09004000e3f0c3e838")


def test_loco_and_turnout_mode_commands() -> None:
    assert commands.get_loco_mode(3) == bytes.fromhex("060060000003")
    assert commands.set_loco_mode(3, LocoMode.MM) == bytes.fromhex("07006100000301")
    assert commands.get_turnout_mode(5) == bytes.fromhex("060070000005")
    assert commands.set_turnout_mode(5, TurnoutMode.MM) == bytes.fromhex("07007100000501")


def test_set_loco_drive_encodes_steps_and_direction() -> None:
    forward = commands.set_loco_drive(3, 0x16, NativeSpeedSteps.STEPS28, DrivingDirection.FORWARD)
    assert forward == bytes.fromhex("0a004000e41200039663")

    reverse = commands.set_loco_drive(200, 47, NativeSpeedSteps.STEPS128, DrivingDirection.REVERSE)
    assert reverse == bytes.fromhex("0a004000e413c0c82fd0")


def test_set_loco_drive_rejects_unknown_steps() -> None:
    with pytest.raises(ValueError):
        commands.set_loco_drive(3, 0, NativeSpeedSteps.UNKNOWN, DrivingDirection.FORWARD)


def test_set_loco_function() -> None:
    assert commands.set_loco_function(3, 0) == bytes.fromhex("0a004000e4f80003809f")
    assert commands.set_loco_function(3, 5, FunctionAction.ON) == bytes.fromhex("0a004000e4f80003455a")


def test_set_loco_function_rejects_out_of_range_index() -> None:
    with pytest.raises(ValueError):
        commands.set_loco_function(3, 64)
    with pytest.raises(ValueError):
        commands.set_loco_function(3, 1, FunctionAction.UNKNOWN)


def test_set_turnout_activation_bit() -> None:
    assert commands.set_turnout(4, TurnoutPosition.POSITION2, True) == bytes.fromhex("0900400053000489de")
    assert commands.set_turnout(4, TurnoutPosition.POSITION2, False) == bytes.fromhex("0900400053000481d6")


def test_feedback_and_slot_requests() -> None:
    assert commands.get_railcom_data(3) == bytes.fromhex("07008900010300")
    assert commands.get_rbus_data(1) == bytes.fromhex("0500810001")
    assert commands.get_loco_slot_info(2) == bytes.fromhex("0600af000002")


@pytest.mark.parametrize("address", [-1, 10240])
def test_loco_address_range(address: int) -> None:
    with pytest.raises(ValueError):
        commands.get_loco_info(address)


def test_unknown_modes_and_positions_are_rejected() -> None:
    with pytest.raises(ValueError):
        commands.set_loco_mode(3, LocoMode.UNKNOWN)
    with pytest.raises(ValueError):
        commands.set_turnout(1, TurnoutPosition.UNKNOWN, True)
    with pytest.raises(ValueError):
        commands.get_rbus_data(256)
