"""Base model and enum for decoded Z21 messages.

Every decoded record inherits from :class:`Z21BaseModel`, a frozen
pydantic model: a record is built once from a validated byte span and
never holds on to the receive buffer.

Enums for device-reported values inherit from :class:`Z21Enum`, which
adds a ``_missing_`` hook returning the ``UNKNOWN`` member for any value
the command station sends without a mapped member.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict


class Z21Enum(enum.IntEnum):
    """Base for device-reported enums.

    Every subclass **must** define an ``UNKNOWN`` member.
    """

    @classmethod
    def _missing_(cls, value: object) -> Z21Enum:
        # pylint: disable=no-member
        if hasattr(cls, "UNKNOWN"):
            unknown: Z21Enum = cls.UNKNOWN  # type: ignore[attr-defined]
            return unknown
        return next(iter(cls))


class Z21BaseModel(BaseModel):
    """Base for decoded Z21 records."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
