"""Locomotive models.

:class:`LocoInfo` keeps both the raw speed reported by the command station
(``native_speed``, ``native_speed_steps``) and the values the application
works with (``current_speed``, ``speed_steps``).  The derived fields are
always recomputed from the native ones, so a record can be re-interpreted
for another decoder protocol with :meth:`LocoInfo.with_mode`.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from pyz21 import speed_steps
from pyz21._constants import FIRMWARE_LOCO_INFO_MM_BIT
from pyz21.models._base import Z21BaseModel, Z21Enum
from pyz21.models.speed import DrivingDirection, LocoMode, LocomotiveProtocol, NativeSpeedSteps, SpeedSteps
from pyz21.models.system import FirmwareVersion

FUNCTION_COUNT = 32


class FunctionAction(Z21Enum):
    """The ``TT`` bits of ``LAN_X_SET_LOCO_FUNCTION``."""

    UNKNOWN = -1
    OFF = 0x00
    ON = 0x40
    TOGGLE = 0x80


def _decode_functions(db4: int, db5: int, db6: int, db7: int, db8: int | None) -> tuple[bool, ...]:
    functions = [False] * FUNCTION_COUNT
    functions[0] = bool(db4 & 0b00010000)
    for i in range(4):
        functions[1 + i] = bool(db4 & (1 << i))
    for i in range(8):
        functions[5 + i] = bool(db5 & (1 << i))
        functions[13 + i] = bool(db6 & (1 << i))
        functions[21 + i] = bool(db7 & (1 << i))
    if db8 is not None:
        for i in range(3):
            functions[29 + i] = bool(db8 & (1 << i))
    return tuple(functions)


def _derived_fields(native_speed: int, native_steps: NativeSpeedSteps, mode: LocoMode | None) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "mode": mode,
        "current_speed": speed_steps.decode_speed(native_speed, native_steps, mode),
        "speed_steps": speed_steps.application_speed_steps(mode, native_steps),
        "protocol": None,
        "display_protocol": None,
    }
    if mode is not None and mode != LocoMode.UNKNOWN:
        fields["protocol"] = speed_steps.protocol_for(mode, native_steps)
        fields["display_protocol"] = speed_steps.protocol_name(mode, native_steps)
    return fields


class LocoInfo(Z21BaseModel):
    """State of one locomotive as reported by ``LAN_X_LOCO_INFO``.

    ``mode`` (and with it ``protocol``) is only known when the firmware
    reports the MM bit (1.43 and later) or after a mode correction.
    """

    address: int = Field(ge=0)
    is_busy: bool = False
    mode: LocoMode | None = None
    protocol: LocomotiveProtocol | None = None
    display_protocol: str | None = None
    native_speed_steps: NativeSpeedSteps = NativeSpeedSteps.UNKNOWN
    speed_steps: SpeedSteps = SpeedSteps.UNKNOWN
    native_speed: int = Field(default=0, ge=0, le=0x7F)
    current_speed: int = 0
    direction: DrivingDirection = DrivingDirection.REVERSE
    functions: tuple[bool, ...] = Field(
        default=(False,) * FUNCTION_COUNT,
        min_length=FUNCTION_COUNT,
        max_length=FUNCTION_COUNT,
    )

    @property
    def speed_steps_numeric(self) -> int:
        """Usable speed steps for the application (14, 28 or 126)."""
        return self.speed_steps.numeric

    @classmethod
    def from_data_bytes(
        cls,
        address: int,
        db2: int,
        db3: int,
        db4: int,
        db5: int,
        db6: int,
        db7: int,
        db8: int | None = None,
        firmware: FirmwareVersion | None = None,
    ) -> LocoInfo:
        """Decode the ``DB2``..``DB8`` bytes of a loco info message.

        Parameters
        ----------
        address : int
            Locomotive address (flag bits already stripped).
        db2 .. db7 : int
            Busy flag and speed steps, direction and speed, F0-F4, F5-F12,
            F13-F20, F21-F28.
        db8 : int or None
            F29-F31, only present with firmware 1.42 and later.
        firmware : FirmwareVersion or None
            Firmware of the command station.  The MM bit of ``db2`` is
            only evaluated for firmware 1.43 and later.
        """
        native_steps = NativeSpeedSteps.from_db2(db2)
        mode: LocoMode | None = None
        if firmware is not None and firmware.at_least(FIRMWARE_LOCO_INFO_MM_BIT):
            mode = LocoMode.MM if db2 & 0b00010000 else LocoMode.DCC
        native_speed = db3 & 0x7F
        return cls(
            address=address,
            is_busy=bool(db2 & 0b00001000),
            native_speed_steps=native_steps,
            native_speed=native_speed,
            direction=DrivingDirection.FORWARD if db3 & 0x80 else DrivingDirection.REVERSE,
            functions=_decode_functions(db4, db5, db6, db7, db8),
            **_derived_fields(native_speed, native_steps, mode),
        )

    def with_mode(self, mode: LocoMode) -> LocoInfo:
        """Return a copy re-derived for the given decoder protocol.

        Speed, speed steps and protocol name are recomputed from the
        native speed; all other fields are kept.
        """
        return self.model_copy(update=_derived_fields(self.native_speed, self.native_speed_steps, mode))


class LocoModeInfo(Z21BaseModel):
    address: int = Field(ge=0)
    mode: LocoMode = LocoMode.UNKNOWN


class LocoSlotInfo(Z21BaseModel):
    """Loco stored in one slot of the command station's loco stack."""

    slot_number: int = Field(ge=0)
    loco_info: LocoInfo
