"""Serial connection to a Kelly controller.

The controller's ETS port sits behind an FT232 USB-serial bridge. A
Bluetooth Classic adapter shows up as an RFCOMM virtual COM port and
is driven the same way, only with a longer receive deadline.

Line settings are fixed at 19200 8N1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import serial
import serial.tools.list_ports

from ..protocol.errors import TransportError
from .base import Transport, TransportState, TransportType

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 19200
WRITE_TIMEOUT_S = 1.0
FTDI_VENDOR_ID = 0x0403


@dataclass
class PortInfo:
    """A serial port visible to the host."""

    device: str
    description: str = ""
    hwid: str = ""
    vid: int | None = None
    pid: int | None = None

    @property
    def is_ftdi(self) -> bool:
        return self.vid == FTDI_VENDOR_ID

    def to_dict(self) -> dict:
        return {
            "device": self.device,
            "description": self.description,
            "hwid": self.hwid,
            "ftdi": self.is_ftdi,
        }


def list_serial_ports() -> list[PortInfo]:
    """List serial ports, FTDI bridges first."""
    ports = [
        PortInfo(
            device=p.device,
            description=p.description or "",
            hwid=p.hwid or "",
            vid=p.vid,
            pid=p.pid,
        )
        for p in serial.tools.list_ports.comports()
    ]
    return sorted(ports, key=lambda p: (not p.is_ftdi, p.device))


class SerialTransport(Transport):
    """pyserial-backed transport.

    Usage::

        link = SerialTransport()
        link.connect("/dev/ttyUSB0")
        link.send(packet)
        reply = link.receive(19, 100)
        link.disconnect()
    """

    def __init__(
        self,
        transport_type: TransportType = TransportType.USB,
        baudrate: int = DEFAULT_BAUDRATE,
    ) -> None:
        super().__init__()
        self.transport_type = transport_type
        self.baudrate = baudrate
        self.port: str = ""
        self._serial: serial.Serial | None = None

    def connect(self, address: str) -> None:
        """Open the port.

        Raises:
            TransportError: If the port cannot be opened.
        """
        self._state = TransportState.CONNECTING
        try:
            self._serial = serial.Serial(
                port=address,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0.1,
                write_timeout=WRITE_TIMEOUT_S,
            )
        except serial.SerialException as e:
            self._state = TransportState.ERROR
            raise TransportError(f"Failed to open {address}: {e}") from e

        self.port = address
        self._state = TransportState.CONNECTED
        logger.info("Opened %s at %d baud", address, self.baudrate)

    def disconnect(self) -> None:
        if self._serial is None:
            self._state = TransportState.DISCONNECTED
            return
        try:
            if self._serial.is_open:
                self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing %s: %s", self.port, e)
        finally:
            self._serial = None
            self._state = TransportState.DISCONNECTED
            logger.info("Closed %s", self.port)

    def _require_open(self) -> serial.Serial:
        if self._serial is None or not self._serial.is_open:
            raise TransportError("Port not open")
        return self._serial

    def send(self, data: bytes) -> None:
        port = self._require_open()
        try:
            written = port.write(data)
        except serial.SerialException as e:
            raise TransportError(f"Serial write failed: {e}") from e
        if written != len(data):
            raise TransportError(f"Serial write short: {written} of {len(data)} bytes")

    def receive(self, expected_length: int, timeout_ms: int) -> bytes:
        """Read up to ``expected_length`` bytes, waiting at most ``timeout_ms``."""
        port = self._require_open()
        try:
            port.timeout = timeout_ms / 1000.0
            return bytes(port.read(expected_length))
        except serial.SerialException as e:
            raise TransportError(f"Serial read failed: {e}") from e

    def drain(self) -> None:
        if self._serial is not None and self._serial.is_open:
            try:
                self._serial.reset_input_buffer()
            except serial.SerialException as e:
                raise TransportError(f"Serial drain failed: {e}") from e
