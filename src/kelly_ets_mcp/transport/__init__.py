"""Transport layer: byte links to the controller."""

from .base import Transport, TransportState, TransportType
from .serial_connection import DEFAULT_BAUDRATE, SerialTransport, list_serial_ports
from .mock import MockTransport


def create_transport(transport_type: TransportType, baudrate: int = DEFAULT_BAUDRATE) -> Transport:
    if transport_type == TransportType.MOCK:
        return MockTransport()
    return SerialTransport(transport_type, baudrate=baudrate)
