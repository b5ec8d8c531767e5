"""Occupancy and decoder feedback models (R-Bus, RailCom)."""

from __future__ import annotations

from pydantic import Field

from pyz21.models._base import Z21BaseModel

RBUS_MODULES_PER_GROUP = 10
RBUS_PORTS_PER_MODULE = 8


class RailComData(Z21BaseModel):
    """``LAN_RAILCOM_DATACHANGED`` record for one decoder address."""

    loco_address: int = Field(ge=0)
    receive_counter: int = 0
    error_counter: int = 0
    options: int = 0
    speed: int = 0
    qos: int = 0

    @property
    def has_speed1(self) -> bool:
        return bool(self.options & 0x01)

    @property
    def has_speed2(self) -> bool:
        return bool(self.options & 0x02)

    @property
    def has_qos(self) -> bool:
        return bool(self.options & 0x04)


class RBusData(Z21BaseModel):
    """``LAN_RMBUS_DATACHANGED``: occupancy of one group of ten modules.

    Group 0 covers modules 1-10, group 1 covers modules 11-20.  Every
    module has eight inputs, one bit per input in ``feedback_status``.
    """

    group_index: int = Field(ge=0)
    feedback_status: bytes = Field(min_length=RBUS_MODULES_PER_GROUP, max_length=RBUS_MODULES_PER_GROUP)

    def is_sensor_active(self, module_address: int, input_port: int) -> bool:
        """Whether an input is occupied.

        Parameters
        ----------
        module_address : int
            1-based module address across all groups.
        input_port : int
            1-based input on the module (1..8).

        Returns
        -------
        bool
            ``False`` when the module is not part of this group or the
            port is out of range.
        """
        first_module = self.group_index * RBUS_MODULES_PER_GROUP + 1
        if not first_module <= module_address < first_module + RBUS_MODULES_PER_GROUP:
            return False
        if not 1 <= input_port <= RBUS_PORTS_PER_MODULE:
            return False
        return bool(self.feedback_status[module_address - first_module] & (1 << (input_port - 1)))
