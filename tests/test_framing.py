"""Tests for ETS packet building and parsing."""

import pytest

from kelly_ets_mcp.protocol.errors import ChecksumMismatch, CommandMismatch, MalformedPacket
from kelly_ets_mcp.protocol.framing import (
    MAX_PACKET_SIZE,
    EtsPacket,
    build_tx_packet,
    parse_rx_packet,
    parse_rx_response,
)


def test_build_zero_length_checksum_is_command():
    """An empty packet carries the command byte as its checksum."""
    assert build_tx_packet(0xF1) == bytes([0xF1, 0x00, 0xF1])


def test_build_with_data():
    """Checksum covers command, length and data."""
    packet = build_tx_packet(0xF2, bytes([0x00, 0x10, 0x00]))
    assert packet == bytes([0xF2, 0x03, 0x00, 0x10, 0x00, 0x05])


def test_build_max_size():
    packet = build_tx_packet(0xF3, bytes(16))
    assert len(packet) == MAX_PACKET_SIZE


def test_build_rejects_oversized_data():
    with pytest.raises(ValueError):
        build_tx_packet(0xF3, bytes(17))


def test_parse_packet_fields():
    packet = parse_rx_packet(bytes([0x11, 0x02, 0x01, 0x09, 0x1D]))
    assert packet == EtsPacket(command=0x11, data_length=2, data=b"\x01\x09", checksum=0x1D)


def test_parse_too_short():
    with pytest.raises(MalformedPacket):
        parse_rx_packet(b"\x11\x00")


def test_parse_incomplete():
    """Declared length longer than the bytes received."""
    with pytest.raises(MalformedPacket):
        parse_rx_packet(bytes([0xF2, 0x10, 0x00, 0x00]))


def test_parse_clamps_length():
    """A length byte above 16 is treated as 16."""
    raw = bytes([0xF2, 0x20]) + bytes(16) + bytes([0x12])
    packet = parse_rx_packet(raw)
    assert packet.data_length == 16
    assert packet.checksum == 0x12


def test_response_ok():
    result = parse_rx_response(bytes([0xF1, 0x00, 0xF1]), 0xF1)
    assert result.ok
    assert result.value.data == b""


def test_response_command_mismatch():
    result = parse_rx_response(bytes([0x3A, 0x00, 0x3A]), 0xF1)
    assert isinstance(result.error, CommandMismatch)
    assert result.error.expected == 0xF1
    assert result.error.actual == 0x3A


def test_response_bad_checksum():
    result = parse_rx_response(bytes([0x11, 0x02, 0x01, 0x09, 0x1E]), 0x11)
    assert isinstance(result.error, ChecksumMismatch)


def test_response_malformed_is_failure():
    """Parse errors come back as a failed Result, not an exception."""
    result = parse_rx_response(b"\x11", 0x11)
    assert not result.ok
    assert isinstance(result.error, MalformedPacket)


def test_packet_repr():
    packet = EtsPacket(command=0xF1, data_length=0, data=b"", checksum=0xF1)
    assert "0xF1" in repr(packet)
    assert "(empty)" in repr(packet)
