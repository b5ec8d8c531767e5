"""Datagram framing.

Every Z21 message starts with a little-endian ``u16`` data length that
covers the whole message, followed by a ``u16`` header.  One UDP datagram
may carry several messages back to back.
"""

from __future__ import annotations

import logging
import struct

_logger = logging.getLogger(__name__)

MIN_FRAME_LENGTH = 4


def xor_checksum(data: bytes | bytearray, start: int = 4, end: int | None = None) -> int:
    """XOR of ``data[start:end]``.

    Defaults cover the X-Bus payload of a frame without its trailing
    checksum byte when called with ``end=len(frame) - 1``.
    """
    result = 0
    for byte in data[start:end]:
        result ^= byte
    return result


def frame_header(frame: bytes) -> int:
    """The ``u16`` header of a framed message."""
    return struct.unpack_from("<H", frame, 2)[0]


def split_frames(datagram: bytes) -> list[bytes]:
    """Split a datagram into length-prefixed messages.

    Splitting stops at the first length field that is truncated, zero or
    longer than the remaining bytes; the rest of the datagram is dropped
    with a warning.
    """
    frames: list[bytes] = []
    offset = 0
    total = len(datagram)
    while offset < total:
        remaining = total - offset
        if remaining < 2:
            _logger.warning("Dropping %d trailing byte(s): truncated length field", remaining)
            break
        length = struct.unpack_from("<H", datagram, offset)[0]
        if length == 0:
            _logger.warning("Dropping %d byte(s): zero length field at offset %d", remaining, offset)
            break
        if length > remaining:
            _logger.warning(
                "Dropping %d byte(s): length %d at offset %d exceeds datagram",
                remaining,
                length,
                offset,
            )
            break
        frames.append(bytes(datagram[offset : offset + length]))
        offset += length
    return frames
