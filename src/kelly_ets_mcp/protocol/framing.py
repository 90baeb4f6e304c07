"""ETS packet builder and parser.

Frame layout::

    +---------+--------+------------------+----------+
    | Command | Length |       Data       | Checksum |
    | 1 byte  | 1 byte | 0-16 bytes       | 1 byte   |
    +---------+--------+------------------+----------+

- Length: number of data bytes (0-16); maximum frame is 19 bytes
- Checksum: (command + length + data) & 0xFF
- A zero-length outbound packet carries ``checksum = command`` instead.
  The controller firmware expects exactly this, so it is kept as is.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..utils.crc import sum8
from .errors import ChecksumMismatch, CommandMismatch, MalformedPacket, ProtocolError
from .result import Result

MAX_DATA_LENGTH = 16
MAX_PACKET_SIZE = 19  # cmd(1) + len(1) + data(16) + checksum(1)


@dataclass(frozen=True)
class EtsPacket:
    """A parsed ETS frame."""

    command: int
    data_length: int
    data: bytes
    checksum: int

    def __repr__(self) -> str:
        return (
            f"EtsPacket(command=0x{self.command:02X}, "
            f"data={self.data.hex(' ') if self.data else '(empty)'}, "
            f"checksum=0x{self.checksum:02X})"
        )


def build_tx_packet(command: int, data: bytes = b"") -> bytes:
    """Build a packet ready to send to the controller.

    Args:
        command: Single-byte ETS command code.
        data: Up to 16 payload bytes.

    Raises:
        ValueError: If ``data`` exceeds 16 bytes.
    """
    if len(data) > MAX_DATA_LENGTH:
        raise ValueError(
            f"Data exceeds max length of {MAX_DATA_LENGTH}, got {len(data)}"
        )
    header = bytes([command & 0xFF, len(data)])
    if not data:
        return header + bytes([command & 0xFF])
    body = header + bytes(data)
    return body + bytes([sum8(body)])


def parse_rx_packet(raw: bytes) -> EtsPacket:
    """Split a received frame into its fields without validating it.

    The declared length is clamped to 16.

    Raises:
        MalformedPacket: If the frame is shorter than 3 bytes or shorter
            than its declared length.
    """
    if len(raw) < 3:
        raise MalformedPacket(f"Packet too short: {len(raw)} bytes")

    command = raw[0]
    data_length = min(raw[1], MAX_DATA_LENGTH)
    if len(raw) < data_length + 3:
        raise MalformedPacket(
            f"Packet incomplete: expected {data_length + 3}, got {len(raw)}"
        )

    return EtsPacket(
        command=command,
        data_length=data_length,
        data=bytes(raw[2 : 2 + data_length]),
        checksum=raw[2 + data_length],
    )


def parse_rx_response(raw: bytes, expected_command: int) -> Result[EtsPacket]:
    """Parse a response and check its command byte and checksum."""
    try:
        packet = parse_rx_packet(raw)
    except ProtocolError as e:
        return Result.failure(e)

    if packet.command != expected_command & 0xFF:
        return Result.failure(CommandMismatch(expected_command & 0xFF, packet.command))

    expected_checksum = sum8(raw, 0, packet.data_length + 2)
    if expected_checksum != packet.checksum:
        return Result.failure(ChecksumMismatch(expected_checksum, packet.checksum))

    return Result.success(packet)
