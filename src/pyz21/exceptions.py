"""Custom exception hierarchy for pyz21."""

from __future__ import annotations


class Z21Error(Exception):
    """Base exception for all pyz21 errors."""


class Z21ConfigError(Z21Error):
    """Invalid or missing configuration."""


class Z21TransportError(Z21Error):
    """UDP-level failure (bind, send, closed socket)."""

    def __init__(
        self,
        message: str,
        *,
        host: str = "",
        port: int | None = None,
    ) -> None:
        self.host = host
        self.port = port
        super().__init__(message)


class Z21FrameError(Z21Error):
    """A received frame is malformed or too short for its header."""

    def __init__(
        self,
        message: str,
        *,
        header: int | None = None,
    ) -> None:
        self.header = header
        super().__init__(message)


class Z21ChecksumError(Z21FrameError):
    """The trailing XOR byte of a frame does not match its payload.

    The dispatcher drops such frames; callers never see this exception.
    """

    def __init__(
        self,
        message: str,
        *,
        header: int | None = None,
        expected: int = 0,
        received: int = 0,
    ) -> None:
        self.expected = expected
        self.received = received
        super().__init__(message, header=header)
