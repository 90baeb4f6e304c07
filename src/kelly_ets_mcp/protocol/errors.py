"""Error taxonomy for controller communication."""

from __future__ import annotations


class KellyError(Exception):
    """Base class for all controller and protocol errors."""


class TransportError(KellyError):
    """Connect, send or receive failed at the link level.

    Not retried by the protocol engine.
    """


class ProtocolError(KellyError):
    """A response could not be accepted. Retried up to the operation's bound."""


class MalformedPacket(ProtocolError):
    """Packet shorter than its header or its declared length."""


class CommandMismatch(ProtocolError):
    """Response command byte differs from the request."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Command mismatch: expected 0x{expected:02X}, got 0x{actual:02X}"
        )
        self.expected = expected
        self.actual = actual


class ChecksumMismatch(ProtocolError):
    """Recomputed checksum differs from the received one."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Checksum mismatch: expected 0x{expected:02X}, got 0x{actual:02X}"
        )
        self.expected = expected
        self.actual = actual


class ReceiveTimeout(ProtocolError):
    """No bytes arrived before the receive deadline."""


class UnsupportedController(KellyError):
    """Module name or firmware version is outside the supported KBLS line."""
