"""RailCom poll cycle.

The command station hands out its RailCom list one entry per
``LAN_RAILCOM_GETDATA`` request.  Every tick starts a new cycle; each
reply for an address not yet seen in the cycle immediately requests the
next entry, and the first repeated address ends the cycle.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable


class RailComPoller:
    def __init__(
        self,
        *,
        request_next: Callable[[], None],
        delay: float,
        interval: float,
        logger: logging.Logger,
    ) -> None:
        self._request_next = request_next
        self._delay = delay
        self._interval = interval
        self._logger = logger
        self._lock = threading.Lock()
        self._seen: set[int] = set()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        if self.is_running:
            return
        with self._lock:
            self._seen.clear()
        self._task = loop.create_task(self._run())
        self._logger.debug("RailCom polling started")

    def stop(self) -> asyncio.Task[None] | None:
        """Cancel the poll task; returns it so the caller may await the cancellation."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            self._logger.debug("RailCom polling stopped")
        with self._lock:
            self._seen.clear()
        return task

    def on_railcom_data(self, address: int) -> None:
        """Record a reply and pull the next entry if the address is new this cycle."""
        if not self.is_running:
            return
        with self._lock:
            if address in self._seen:
                return
            self._seen.add(address)
        self._request_next()

    async def _run(self) -> None:
        await asyncio.sleep(self._delay)
        while True:
            with self._lock:
                self._seen.clear()
            try:
                self._request_next()
            except Exception:
                self._logger.exception("RailCom poll request failed")
            await asyncio.sleep(self._interval)
