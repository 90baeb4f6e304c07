"""Byte-stream link contract used by the controller session."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum


class TransportType(Enum):
    USB = "usb"
    BLUETOOTH_CLASSIC = "bluetooth_classic"
    MOCK = "mock"


class TransportState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class Transport(ABC):
    """A point-to-point byte pipe to one controller.

    ``receive`` returns as soon as ``expected_length`` bytes have arrived or
    the timeout expires, whichever comes first, and may return fewer bytes
    (including none). Failures of the link itself raise
    :class:`~kelly_ets_mcp.protocol.errors.TransportError`.
    """

    transport_type: TransportType

    def __init__(self) -> None:
        self._state = TransportState.DISCONNECTED

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == TransportState.CONNECTED

    @abstractmethod
    def connect(self, address: str) -> None:
        ...

    @abstractmethod
    def disconnect(self) -> None:
        ...

    @abstractmethod
    def send(self, data: bytes) -> None:
        ...

    @abstractmethod
    def receive(self, expected_length: int, timeout_ms: int) -> bytes:
        ...

    @abstractmethod
    def drain(self) -> None:
        """Discard any bytes already received but not yet read."""
