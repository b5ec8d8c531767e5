"""Reference-counted broadcast subscriptions.

The command station only sends broadcasts for the categories enabled in
the client's broadcast flag mask.  Listeners attach to a category; the
first attach enables its flag and the last detach clears it again.  The
mask is pushed to the device only when it actually changes.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable

from pyz21._constants import FIRMWARE_ALL_LOCO_INFO
from pyz21.models import BroadcastFlags, FirmwareVersion


class SubscriptionCategory(enum.StrEnum):
    LOCO_INFO = "loco_info"
    RAILCOM = "railcom"
    RBUS = "rbus"
    SYSTEM_STATE = "system_state"


_CATEGORY_FLAGS: dict[SubscriptionCategory, BroadcastFlags] = {
    SubscriptionCategory.LOCO_INFO: BroadcastFlags.ALL_LOCO_INFO,
    SubscriptionCategory.RAILCOM: BroadcastFlags.ALL_RAILCOM,
    SubscriptionCategory.RBUS: BroadcastFlags.RBUS,
    SubscriptionCategory.SYSTEM_STATE: BroadcastFlags.SYSTEM_STATE,
}


class SubscriptionManager:
    """Tracks listener counts per category and keeps the device mask in sync.

    Parameters
    ----------
    push_flags
        Sends ``LAN_SET_BROADCASTFLAGS`` with the given mask.
    on_railcom_active
        Called with ``True`` on the first RailCom attach and ``False`` on
        the last detach, outside the internal lock.
    logger
        Logger of the owning client.
    """

    def __init__(
        self,
        *,
        push_flags: Callable[[BroadcastFlags], None],
        on_railcom_active: Callable[[bool], None],
        logger: logging.Logger,
    ) -> None:
        self._push_flags = push_flags
        self._on_railcom_active = on_railcom_active
        self._logger = logger
        self._lock = threading.Lock()
        self._counts: dict[SubscriptionCategory, int] = {category: 0 for category in SubscriptionCategory}
        self._firmware: FirmwareVersion | None = None
        self._active = False
        # Last mask sent to the device; ``None`` until the first push of a session.
        self._pushed: BroadcastFlags | None = None

    def count(self, category: SubscriptionCategory) -> int:
        with self._lock:
            return self._counts[category]

    @property
    def pushed_flags(self) -> BroadcastFlags | None:
        with self._lock:
            return self._pushed

    def desired_flags(self) -> BroadcastFlags:
        with self._lock:
            return self._compute_flags()

    def _compute_flags(self) -> BroadcastFlags:
        flags = BroadcastFlags.BASIC
        for category, count in self._counts.items():
            if count <= 0:
                continue
            if category is SubscriptionCategory.LOCO_INFO and not self._all_loco_info_supported():
                continue
            flags |= _CATEGORY_FLAGS[category]
        return flags

    def _all_loco_info_supported(self) -> bool:
        return self._firmware is not None and self._firmware.at_least(FIRMWARE_ALL_LOCO_INFO)

    def _sync_locked(self, *, force: bool = False) -> None:
        if not self._active:
            return
        flags = self._compute_flags()
        if not force and flags == self._pushed:
            return
        self._logger.info("Setting broadcast flags to 0x%08X (%r)", int(flags), flags)
        self._push_flags(flags)
        self._pushed = flags

    def attach(self, category: SubscriptionCategory) -> None:
        with self._lock:
            self._counts[category] += 1
            first = self._counts[category] == 1
            if first:
                self._sync_locked()
        if first and category is SubscriptionCategory.RAILCOM:
            self._on_railcom_active(True)

    def detach(self, category: SubscriptionCategory) -> None:
        with self._lock:
            if self._counts[category] == 0:
                self._logger.warning("Detach from %s without a matching attach", category)
                return
            self._counts[category] -= 1
            last = self._counts[category] == 0
            if last:
                self._sync_locked()
        if last and category is SubscriptionCategory.RAILCOM:
            self._on_railcom_active(False)

    def activate(self, firmware: FirmwareVersion | None) -> None:
        """Start a session: push the baseline mask for the current listeners."""
        with self._lock:
            self._firmware = firmware
            self._active = True
            self._pushed = None
            if firmware is not None and not self._all_loco_info_supported() and self._counts[SubscriptionCategory.LOCO_INFO]:
                self._logger.info(
                    "Firmware %s does not support loco info broadcasts for all locos; poll per address instead",
                    firmware,
                )
            self._sync_locked(force=True)

    def deactivate(self) -> None:
        """End a session; listener counts are kept for the next one."""
        with self._lock:
            self._active = False
            self._pushed = None
            self._firmware = None
