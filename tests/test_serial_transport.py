"""Tests for the pyserial transport with the port mocked out."""

from types import SimpleNamespace
from unittest.mock import MagicMock, PropertyMock, patch

import pytest
import serial

from kelly_ets_mcp.protocol.errors import TransportError
from kelly_ets_mcp.transport import TransportType, create_transport
from kelly_ets_mcp.transport.base import TransportState
from kelly_ets_mcp.transport.mock import MockTransport
from kelly_ets_mcp.transport.serial_connection import SerialTransport, list_serial_ports


def _port(device, vid=None):
    return SimpleNamespace(device=device, description="", hwid="", vid=vid, pid=None)


def _open_transport():
    port = MagicMock()
    port.is_open = True
    with patch("serial.Serial", return_value=port) as ctor:
        link = SerialTransport()
        link.connect("/dev/ttyUSB0")
    return link, port, ctor


def test_list_ports_ftdi_first():
    ports = [_port("/dev/ttyS0"), _port("/dev/ttyUSB1", vid=0x0403), _port("/dev/ttyACM0", vid=0x2341)]
    with patch("serial.tools.list_ports.comports", return_value=ports):
        listed = list_serial_ports()
    assert [p.device for p in listed] == ["/dev/ttyUSB1", "/dev/ttyACM0", "/dev/ttyS0"]
    assert listed[0].to_dict()["ftdi"]


def test_connect_uses_8n1():
    link, _, ctor = _open_transport()
    kwargs = ctor.call_args.kwargs
    assert kwargs["baudrate"] == 19200
    assert kwargs["bytesize"] == serial.EIGHTBITS
    assert kwargs["parity"] == serial.PARITY_NONE
    assert kwargs["stopbits"] == serial.STOPBITS_ONE
    assert link.state == TransportState.CONNECTED


def test_connect_failure():
    with patch("serial.Serial", side_effect=serial.SerialException("busy")):
        link = SerialTransport()
        with pytest.raises(TransportError, match="busy"):
            link.connect("/dev/ttyUSB0")
    assert link.state == TransportState.ERROR


def test_send_short_write():
    link, port, _ = _open_transport()
    port.write.return_value = 1
    with pytest.raises(TransportError):
        link.send(b"\xF1\x00\xF1")


def test_receive_sets_timeout():
    link, port, _ = _open_transport()
    port.read.return_value = b"\xF1\x00\xF1"
    assert link.receive(19, 300) == b"\xF1\x00\xF1"
    assert port.timeout == 0.3
    port.read.assert_called_with(19)


def test_drain_resets_input():
    link, port, _ = _open_transport()
    link.drain()
    port.reset_input_buffer.assert_called_once()


def test_closed_port_raises():
    link = SerialTransport()
    with pytest.raises(TransportError):
        link.send(b"\x00")


def test_disconnect_closes():
    link, port, _ = _open_transport()
    link.disconnect()
    port.close.assert_called_once()
    assert link.state == TransportState.DISCONNECTED


def test_create_transport():
    assert isinstance(create_transport(TransportType.MOCK), MockTransport)
    link = create_transport(TransportType.BLUETOOTH_CLASSIC, baudrate=9600)
    assert isinstance(link, SerialTransport)
    assert link.baudrate == 9600


def test_drain_failure_raises_transport_error():
    link, port, _ = _open_transport()
    port.reset_input_buffer.side_effect = serial.SerialException("device unplugged")
    with pytest.raises(TransportError, match="unplugged"):
        link.drain()


def test_receive_timeout_failure_raises_transport_error():
    link, port, _ = _open_transport()
    type(port).timeout = PropertyMock(side_effect=serial.SerialException("device unplugged"))
    with pytest.raises(TransportError, match="unplugged"):
        link.receive(19, 300)
