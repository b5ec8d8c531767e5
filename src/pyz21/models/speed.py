"""Locomotive protocol and speed-step enums."""

from __future__ import annotations

import enum

from pyz21.models._base import Z21Enum


class LocoMode(Z21Enum):
    """Decoder protocol family of a locomotive address."""

    UNKNOWN = -1
    DCC = 0
    MM = 1


class DrivingDirection(Z21Enum):
    UNKNOWN = -1
    REVERSE = 0
    FORWARD = 1


class NativeSpeedSteps(Z21Enum):
    """Speed steps as reported and accepted by the command station.

    For Motorola locos the command station reuses the DCC values:
    ``STEPS14`` is MM1/14, ``STEPS28`` is MM2/14 and ``STEPS128`` is
    MM2/28.  The value is the one used in the ``0x1S`` byte of the
    drive command.
    """

    UNKNOWN = -1
    STEPS14 = 0
    STEPS28 = 2
    STEPS128 = 3

    @classmethod
    def from_db2(cls, db2: int) -> NativeSpeedSteps:
        """Decode the ``KKK`` bits of a ``LAN_X_LOCO_INFO`` DB2 byte."""
        return _DB2_SPEED_STEPS.get(db2 & 0b111, cls.UNKNOWN)


_DB2_SPEED_STEPS: dict[int, NativeSpeedSteps] = {
    0: NativeSpeedSteps.STEPS14,
    2: NativeSpeedSteps.STEPS28,
    4: NativeSpeedSteps.STEPS128,
}


class SpeedSteps(Z21Enum):
    """Speed steps as used by the application, corrected for MM.

    MM2/14 is represented as ``STEPS14`` even though the command station
    reports it as 28 steps.
    """

    UNKNOWN = -1
    STEPS14 = 0
    STEPS28 = 2
    STEPS128 = 3

    @property
    def numeric(self) -> int:
        """Highest usable speed step (126 for the 128-step mode)."""
        return _SPEED_STEPS_NUMERIC.get(self, 0)


_SPEED_STEPS_NUMERIC: dict[SpeedSteps, int] = {
    SpeedSteps.STEPS14: 14,
    SpeedSteps.STEPS28: 28,
    SpeedSteps.STEPS128: 126,
}


class LocomotiveProtocol(enum.StrEnum):
    """Protocol and speed steps as a display name."""

    DCC14 = "DCC14"
    DCC28 = "DCC28"
    DCC128 = "DCC128"
    MM1_14 = "MM1/14"
    MM2_14 = "MM2/14"
    MM2_28 = "MM2/28"
