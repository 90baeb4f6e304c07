"""Interpretation of validated ETS response packets."""

from __future__ import annotations

from dataclasses import dataclass

from .commands import READ_BLOCK_SIZE
from .errors import MalformedPacket
from .framing import EtsPacket

MONITOR_BLOCK_SIZE = 16
PHASE_CURRENT_CHANNELS = 10


@dataclass
class VersionResponse:
    """Parsed CODE_VERSION (0x11) response."""

    version: int
    raw: bytes

    def __repr__(self) -> str:
        return f"VersionResponse(version={self.version})"


def parse_version(packet: EtsPacket) -> VersionResponse:
    """Parse a CODE_VERSION response.

    The first two data bytes hold the firmware version, big-endian.
    Shorter payloads report version 0.
    """
    data = packet.data
    version = (data[0] << 8) | data[1] if len(data) >= 2 else 0
    return VersionResponse(version=version, raw=data)


def copy_flash_block(packet: EtsPacket, block_index: int, target: bytearray) -> None:
    """Copy one FLASH_READ response into its 16-byte window of the image.

    Raises:
        MalformedPacket: If the response carries fewer than 16 bytes.
    """
    if packet.data_length < READ_BLOCK_SIZE:
        raise MalformedPacket(
            f"Flash block {block_index} short: {packet.data_length} bytes"
        )
    start = block_index * READ_BLOCK_SIZE
    target[start : start + READ_BLOCK_SIZE] = packet.data[:READ_BLOCK_SIZE]


def copy_monitor_block(packet: EtsPacket, block_index: int, target: bytearray) -> None:
    """Copy a user-monitor response into its slot of the 48-byte buffer."""
    start = block_index * MONITOR_BLOCK_SIZE
    count = min(packet.data_length, MONITOR_BLOCK_SIZE)
    target[start : start + count] = packet.data[:count]


def parse_phase_current(packet: EtsPacket) -> list[int]:
    """Parse a GET_PHASE_I_AD response into its 10 zero-current AD values.

    Raises:
        MalformedPacket: If fewer than 10 values are present.
    """
    if packet.data_length < PHASE_CURRENT_CHANNELS:
        raise MalformedPacket(
            f"Phase current response short: {packet.data_length} bytes"
        )
    return list(packet.data[:PHASE_CURRENT_CHANNELS])
