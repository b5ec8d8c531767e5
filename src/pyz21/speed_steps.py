"""Speed-step conversion between the command station and the application.

The command station encodes speeds in a *native* form that depends on the
speed-step mode (see ``LAN_X_SET_LOCO_DRIVE`` in the Z21 LAN protocol):

- 14 steps: ``0000VVVV``, 0 = stop, 1 = emergency stop, 2..15 = steps 1..14
- 28 steps: ``000VVVVV`` with the fifth speed bit stored in bit 4
- 128 steps: ``0VVVVVVV``, 0 = stop, 1 = emergency stop, 2..127 = steps 1..126

The application works with *normalized* step numbers (0..14, 0..28,
0..126).  Motorola locomotives are reported by the command station in DCC
speed steps, so received and commanded speeds need an additional
correction, done by :func:`decode_speed` and :func:`encode_speed`.
"""

from __future__ import annotations

import math

from pyz21.models.speed import LocoMode, LocomotiveProtocol, NativeSpeedSteps, SpeedSteps

# ------------------------------------------------------------------
# Lookup tables (native code -> normalized step)
# ------------------------------------------------------------------


def _build_dcc14_map() -> dict[int, int]:
    speed_map = {0: 0, 1: 0}
    for native in range(2, 16):
        speed_map[native] = native - 1
    return speed_map


def _build_dcc28_map() -> dict[int, int]:
    # Stop and emergency stop, with and without the intermediate bit.
    speed_map = {0b00000: 0, 0b10000: 0, 0b00001: 0, 0b10001: 0}
    for native in range(2, 16):
        speed_map[native] = (native - 2) * 2 + 1
        speed_map[native | 0b10000] = (native - 2) * 2 + 2
    return speed_map


DCC14_SPEED_MAP: dict[int, int] = _build_dcc14_map()
DCC28_SPEED_MAP: dict[int, int] = _build_dcc28_map()

MAX_SPEED_14 = 14
MAX_SPEED_28 = 28
MAX_SPEED_128 = 126

# Received MM2/28 speeds are divided by 4.5, commanded ones multiplied by 4.6.
MM_RECEIVE_FACTOR_128 = 4.5
MM_COMMAND_FACTOR_128 = 4.6


def _reverse_lookup(speed_map: dict[int, int], value: int) -> int:
    for native, normalized in speed_map.items():
        if normalized == value:
            return native
    return 0


# ------------------------------------------------------------------
# DCC conversions
# ------------------------------------------------------------------


def speed_step_14(native: int) -> int:
    """Native 14-step code to normalized step (0..14)."""
    return DCC14_SPEED_MAP.get(native & 0x0F, 0)


def speed_step_28(native: int) -> int:
    """Native 28-step code to normalized step (0..28)."""
    return DCC28_SPEED_MAP.get(native & 0x1F, 0)


def speed_step_128(native: int) -> int:
    """Native 128-step code to normalized step (0..126)."""
    key = native & 0x7F
    if key <= 1:
        return 0
    return key - 1


def speed_step_14_reverse(value: int) -> int:
    return _reverse_lookup(DCC14_SPEED_MAP, min(max(value, 0), MAX_SPEED_14))


def speed_step_28_reverse(value: int) -> int:
    return _reverse_lookup(DCC28_SPEED_MAP, min(max(value, 0), MAX_SPEED_28))


def speed_step_128_reverse(value: int) -> int:
    """Normalized step to native 128-step code.

    Step 0 maps to stop (0); every other step ``n`` maps to ``n + 1`` so
    that the emergency-stop code 1 is never produced.
    """
    if value <= 0:
        return 0
    return min(value, MAX_SPEED_128) + 1


def speed_step(native: int, steps: NativeSpeedSteps | SpeedSteps) -> int:
    """Native code to normalized DCC step for the given step mode.

    Returns 0 for an unknown step mode.
    """
    if steps == NativeSpeedSteps.STEPS14:
        return speed_step_14(native)
    if steps == NativeSpeedSteps.STEPS28:
        return speed_step_28(native)
    if steps == NativeSpeedSteps.STEPS128:
        return speed_step_128(native)
    return 0


def speed_step_reverse(value: int, steps: NativeSpeedSteps | SpeedSteps) -> int:
    """Normalized DCC step to native code for the given step mode."""
    if steps == NativeSpeedSteps.STEPS14:
        return speed_step_14_reverse(value)
    if steps == NativeSpeedSteps.STEPS28:
        return speed_step_28_reverse(value)
    if steps == NativeSpeedSteps.STEPS128:
        return speed_step_128_reverse(value)
    return 0


# ------------------------------------------------------------------
# Motorola correction
# ------------------------------------------------------------------


def application_speed_steps(mode: LocoMode | None, native_steps: NativeSpeedSteps) -> SpeedSteps:
    """Speed-step mode the application sees for a native step mode."""
    if native_steps == NativeSpeedSteps.UNKNOWN:
        return SpeedSteps.UNKNOWN
    if mode == LocoMode.MM:
        if native_steps == NativeSpeedSteps.STEPS128:
            return SpeedSteps.STEPS28
        return SpeedSteps.STEPS14
    return SpeedSteps(int(native_steps))


def decode_speed(native_speed: int, native_steps: NativeSpeedSteps, mode: LocoMode | None) -> int:
    """Convert a speed received from the command station to the application domain.

    Parameters
    ----------
    native_speed : int
        The 7-bit speed value from DB3 of a loco info message.
    native_steps : NativeSpeedSteps
        Speed steps reported by the command station.
    mode : LocoMode or None
        Decoder protocol, ``None`` when not (yet) known.  Unknown modes
        are treated as DCC.

    Returns
    -------
    int
        Normalized speed, rounded down for Motorola locos.
    """
    speed = speed_step(native_speed, native_steps)
    if mode != LocoMode.MM:
        return speed
    if native_steps == NativeSpeedSteps.STEPS14:
        return speed
    if native_steps == NativeSpeedSteps.STEPS28:
        return speed // 2
    if native_steps == NativeSpeedSteps.STEPS128:
        return math.floor(speed / MM_RECEIVE_FACTOR_128)
    return 0


def encode_speed(speed: int, native_steps: NativeSpeedSteps, mode: LocoMode | None) -> int:
    """Convert an application speed to the native code sent to the command station.

    Motorola speeds are scaled up to the DCC step count (rounding up)
    before the reverse lookup.  Results are clamped to the step domain.
    """
    speed = max(speed, 0)
    if mode == LocoMode.MM:
        if native_steps == NativeSpeedSteps.STEPS14:
            speed = min(speed, MAX_SPEED_14)
        elif native_steps == NativeSpeedSteps.STEPS28:
            speed = min(speed * 2, MAX_SPEED_28)
        elif native_steps == NativeSpeedSteps.STEPS128:
            speed = min(math.ceil(speed * MM_COMMAND_FACTOR_128), MAX_SPEED_128)
    return speed_step_reverse(speed, native_steps)


# ------------------------------------------------------------------
# Protocol naming
# ------------------------------------------------------------------

_MM_PROTOCOLS: dict[NativeSpeedSteps, LocomotiveProtocol] = {
    NativeSpeedSteps.STEPS14: LocomotiveProtocol.MM1_14,
    NativeSpeedSteps.STEPS28: LocomotiveProtocol.MM2_14,
    NativeSpeedSteps.STEPS128: LocomotiveProtocol.MM2_28,
}

_DCC_PROTOCOLS: dict[NativeSpeedSteps, LocomotiveProtocol] = {
    NativeSpeedSteps.STEPS14: LocomotiveProtocol.DCC14,
    NativeSpeedSteps.STEPS28: LocomotiveProtocol.DCC28,
    NativeSpeedSteps.STEPS128: LocomotiveProtocol.DCC128,
}


def protocol_for(mode: LocoMode, native_steps: NativeSpeedSteps) -> LocomotiveProtocol | None:
    """Protocol for a mode and native step count, ``None`` if steps are unknown."""
    table = _MM_PROTOCOLS if mode == LocoMode.MM else _DCC_PROTOCOLS
    return table.get(native_steps)


def protocol_name(mode: LocoMode, native_steps: NativeSpeedSteps) -> str:
    """Display name such as ``"DCC28"`` or ``"MM2/14"``."""
    protocol = protocol_for(mode, native_steps)
    if protocol is not None:
        return protocol.value
    return "MM" if mode == LocoMode.MM else "DCC"
