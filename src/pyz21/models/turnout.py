"""Turnout (accessory) models."""

from __future__ import annotations

from pydantic import Field

from pyz21.models._base import Z21BaseModel, Z21Enum


class TurnoutState(Z21Enum):
    """Switching state reported by ``LAN_X_TURNOUT_INFO``."""

    UNKNOWN = -1
    NOT_SWITCHED = 0
    POSITION1 = 1
    POSITION2 = 2
    INVALID = 3


class TurnoutPosition(Z21Enum):
    """Target output when switching a turnout (the ``P`` bit)."""

    UNKNOWN = -1
    POSITION1 = 0
    POSITION2 = 1


class TurnoutMode(Z21Enum):
    UNKNOWN = -1
    DCC = 0
    MM = 1


class TurnoutInfo(Z21BaseModel):
    address: int = Field(ge=0)
    state: TurnoutState = TurnoutState.UNKNOWN


class TurnoutModeInfo(Z21BaseModel):
    address: int = Field(ge=0)
    mode: TurnoutMode = TurnoutMode.UNKNOWN
