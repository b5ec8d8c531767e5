"""ICMP reachability probe."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import icmplib

_logger = logging.getLogger(__name__)

#: ``(host, timeout) -> reachable``; the client accepts any coroutine
#: function with this signature.
Probe = Callable[[str, float], Awaitable[bool]]


async def icmp_probe(host: str, timeout: float) -> bool:
    """Send one ICMP echo request and report whether a reply arrived.

    Uses unprivileged (datagram) ICMP sockets.  Errors such as a failed
    name lookup or missing socket permissions count as unreachable.
    """
    try:
        result = await icmplib.async_ping(host, count=1, timeout=timeout, privileged=False)
    except (icmplib.ICMPLibError, OSError) as exc:
        _logger.warning("Ping to %s failed: %s", host, exc)
        return False
    _logger.debug("Ping to %s: alive=%s rtt=%.1fms", host, result.is_alive, result.avg_rtt)
    return bool(result.is_alive)
