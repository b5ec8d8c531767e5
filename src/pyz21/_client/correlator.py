"""Correction of ``LAN_X_LOCO_INFO`` for Motorola locomotives.

Firmware before 1.43 does not report the decoder protocol in loco info
messages, so the speed of an MM loco is interpreted on the wrong scale.
When the application requests loco info for an address, the client also
requests the loco mode.  This module pairs the two replies, whichever
arrives first, and produces exactly one corrected :class:`LocoInfo`.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections.abc import Callable

from pyz21.models import LocoInfo, LocoModeInfo


@dataclasses.dataclass
class _PendingLocoInfo:
    created: float
    info: LocoInfo | None = None
    mode_info: LocoModeInfo | None = None


@dataclasses.dataclass(frozen=True)
class CorrelationResult:
    """Outcome of feeding a reply to the correlator.

    ``consumed`` means the reply belongs to a pending request and must not
    be published on its own.  ``completed`` carries the corrected record
    once both halves have arrived.
    """

    consumed: bool
    completed: LocoInfo | None = None


_NOT_PENDING = CorrelationResult(consumed=False)


class LocoInfoCorrelator:
    def __init__(
        self,
        *,
        ttl: float,
        logger: logging.Logger,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._logger = logger
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[int, _PendingLocoInfo] = {}

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired = [address for address, entry in self._pending.items() if now - entry.created > self._ttl]
        for address in expired:
            del self._pending[address]
            self._logger.debug("Evicted pending loco info request for address %d", address)

    def register(self, address: int) -> None:
        """Mark ``address`` as waiting for both a loco info and a loco mode reply."""
        with self._lock:
            self._evict_expired_locked()
            self._pending[address] = _PendingLocoInfo(created=self._clock())

    def is_pending(self, address: int) -> bool:
        with self._lock:
            self._evict_expired_locked()
            return address in self._pending

    def on_loco_info(self, info: LocoInfo) -> CorrelationResult:
        with self._lock:
            self._evict_expired_locked()
            entry = self._pending.get(info.address)
            if entry is None:
                return _NOT_PENDING
            if entry.mode_info is None:
                entry.info = info
                self._logger.debug("Stored loco info for address %d, awaiting loco mode", info.address)
                return CorrelationResult(consumed=True)
            del self._pending[info.address]
            return CorrelationResult(consumed=True, completed=info.with_mode(entry.mode_info.mode))

    def on_loco_mode(self, mode_info: LocoModeInfo) -> CorrelationResult:
        with self._lock:
            self._evict_expired_locked()
            entry = self._pending.get(mode_info.address)
            if entry is None:
                return _NOT_PENDING
            if entry.info is None:
                entry.mode_info = mode_info
                self._logger.debug("Stored loco mode for address %d, awaiting loco info", mode_info.address)
                return CorrelationResult(consumed=True)
            del self._pending[mode_info.address]
            return CorrelationResult(consumed=True, completed=entry.info.with_mode(mode_info.mode))

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
