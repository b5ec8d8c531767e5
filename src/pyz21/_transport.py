"""UDP transport to the command station."""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, Protocol

from pyz21.exceptions import Z21TransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the client.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`UdpTransport`) concrete.
    """

    def send(self, data: bytes) -> None:
        ...

    async def receive(self) -> bytes:
        ...

    def close(self) -> None:
        ...


class _Z21DatagramProtocol(asyncio.DatagramProtocol):
    """Queues datagrams that come from the command station address."""

    def __init__(self, remote_host: str, queue: asyncio.Queue[bytes | None]) -> None:
        self._remote_host = remote_host
        self._queue = queue

    def datagram_received(self, data: bytes, addr: Any) -> None:
        if addr[0] != self._remote_host:
            _logger.debug("Ignoring %d byte(s) from unexpected sender %s", len(data), addr[0])
            return
        self._queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        _logger.warning("UDP error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            _logger.warning("UDP endpoint closed with error: %s", exc)
        self._queue.put_nowait(None)


class UdpTransport:
    """Datagram endpoint bound to a local port, talking to one command station."""

    def __init__(
        self,
        transport: asyncio.DatagramTransport,
        queue: asyncio.Queue[bytes | None],
        remote_host: str,
        remote_port: int,
    ) -> None:
        self._transport = transport
        self._queue = queue
        self._remote = (remote_host, remote_port)

    @classmethod
    async def open(cls, host: str, port: int, local_port: int) -> UdpTransport:
        """Resolve ``host`` and bind a UDP endpoint on ``local_port``.

        Raises
        ------
        Z21TransportError
            If the host cannot be resolved or the port cannot be bound.
        """
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, port, family=socket.AF_INET, type=socket.SOCK_DGRAM)
        except OSError as exc:
            raise Z21TransportError(f"Cannot resolve {host}: {exc}", host=host, port=port) from exc
        remote_host = infos[0][4][0]

        queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        try:
            transport, _protocol = await loop.create_datagram_endpoint(
                lambda: _Z21DatagramProtocol(remote_host, queue),
                local_addr=("0.0.0.0", local_port),
                family=socket.AF_INET,
            )
        except OSError as exc:
            raise Z21TransportError(
                f"Cannot bind UDP port {local_port}: {exc}",
                host=host,
                port=port,
            ) from exc
        _logger.debug("Bound UDP endpoint %s for %s:%d", transport.get_extra_info("sockname"), remote_host, port)
        return cls(transport, queue, remote_host, port)

    @property
    def local_address(self) -> tuple[str, int]:
        return self._transport.get_extra_info("sockname")

    def send(self, data: bytes) -> None:
        if self._transport.is_closing():
            raise Z21TransportError("UDP endpoint is closed", host=self._remote[0], port=self._remote[1])
        try:
            self._transport.sendto(data, self._remote)
        except OSError as exc:
            raise Z21TransportError(f"Send failed: {exc}", host=self._remote[0], port=self._remote[1]) from exc

    async def receive(self) -> bytes:
        """Next datagram from the command station.

        Raises
        ------
        Z21TransportError
            Once the endpoint has been closed.
        """
        data = await self._queue.get()
        if data is None:
            raise Z21TransportError("UDP endpoint closed", host=self._remote[0], port=self._remote[1])
        return data

    def close(self) -> None:
        if not self._transport.is_closing():
            self._transport.close()
