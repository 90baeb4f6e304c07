"""ETS command codes and flash transfer packet builders.

Flash addresses are carried in the first three data bytes as
``[addr_low, length, addr_high]``.

- Read: 32 requests of 16 bytes cover the 512-byte image.
- Write: 39 chunks of 13 bytes cover 0-506, then a fixed 5-byte chunk
  at address 507 covers the remainder.
"""

from __future__ import annotations

from enum import IntEnum

from .framing import build_tx_packet


class EtsCommand(IntEnum):
    """ETS command codes."""

    WATCHDOG_TEST = 0x10
    CODE_VERSION = 0x11
    A2D_BATCH_READ = 0x1B
    GPIO_PORT_INPUT = 0x1E
    GPIO_PIN_INPUT = 0x1F
    MONITOR = 0x33
    MONITOR1 = 0x34
    GET_PHASE_I_AD = 0x35
    USER_MONITOR1 = 0x3A
    USER_MONITOR2 = 0x3B
    USER_MONITOR3 = 0x3C
    QUIT_IDENTIFY = 0x42
    ENTRY_IDENTIFY = 0x43
    CHECK_IDENTIFY_STATUS = 0x44
    GET_PMSM_PARM = 0x4B
    WRITE_PMSM_PARM = 0x4C
    GET_RESOLVER_INIT_ANGLE = 0x4D
    GET_HALL_SEQUENCE = 0x4E
    ERASE_FLASH = 0xB1
    BURNT_FLASH = 0xB2
    BURNT_CHECKSUM = 0xB3
    BURNT_RESET = 0xB4
    INVALID_COMMAND = 0xE3
    FLASH_OPEN = 0xF1
    FLASH_READ = 0xF2
    FLASH_WRITE = 0xF3
    FLASH_CLOSE = 0xF4
    FLASH_INFO_VERSION = 0xFA


DATA_BUFFER_SIZE = 512
READ_BLOCK_SIZE = 16
READ_BLOCK_COUNT = 32  # 32 * 16 = 512
WRITE_CHUNK_SIZE = 13
WRITE_CHUNK_COUNT = 40  # 39 full + 1 tail
LAST_CHUNK_SIZE = 5  # bytes 507-511
LAST_CHUNK_ADDR = 507  # 39 * 13


def build_command(command: EtsCommand, data: bytes = b"") -> bytes:
    """Build a single ETS packet for a command."""
    return build_tx_packet(command.value, data)


def build_read_version() -> bytes:
    """Build a CODE_VERSION (0x11) query."""
    return build_command(EtsCommand.CODE_VERSION)


def build_flash_open() -> bytes:
    """Build a FLASH_OPEN (0xF1) request. Required before any flash read or write."""
    return build_command(EtsCommand.FLASH_OPEN)


def build_flash_close() -> bytes:
    """Build a FLASH_CLOSE (0xF4) request, which commits written data."""
    return build_command(EtsCommand.FLASH_CLOSE)


def _address_header(address: int, length: int) -> bytes:
    return bytes([address & 0xFF, length, (address >> 8) & 0xFF])


def build_flash_read_packets() -> list[bytes]:
    """Build the 32 FLASH_READ requests covering addresses 0-511."""
    return [
        build_command(
            EtsCommand.FLASH_READ,
            _address_header(i * READ_BLOCK_SIZE, READ_BLOCK_SIZE),
        )
        for i in range(READ_BLOCK_COUNT)
    ]


def build_flash_write_packets(data_value: bytes) -> list[bytes]:
    """Build the 40 FLASH_WRITE requests for a full calibration image.

    Args:
        data_value: The calibration image, at least 512 bytes.

    Raises:
        ValueError: If the image is shorter than 512 bytes.
    """
    if len(data_value) < DATA_BUFFER_SIZE:
        raise ValueError(
            f"DataValue must be at least {DATA_BUFFER_SIZE} bytes, got {len(data_value)}"
        )

    packets: list[bytes] = []
    for i in range(WRITE_CHUNK_COUNT - 1):
        addr = i * WRITE_CHUNK_SIZE
        chunk = bytes(data_value[addr : addr + WRITE_CHUNK_SIZE])
        packets.append(
            build_command(
                EtsCommand.FLASH_WRITE,
                _address_header(addr, WRITE_CHUNK_SIZE) + chunk,
            )
        )

    # Tail chunk is fixed at 507 (0x01FB), not derived from the loop.
    tail = bytes(data_value[LAST_CHUNK_ADDR : LAST_CHUNK_ADDR + LAST_CHUNK_SIZE])
    packets.append(
        build_command(
            EtsCommand.FLASH_WRITE,
            _address_header(LAST_CHUNK_ADDR, LAST_CHUNK_SIZE) + tail,
        )
    )
    return packets


def packet_address(packet: bytes) -> tuple[int, int]:
    """Return ``(address, length)`` encoded in a flash read/write packet."""
    return packet[2] | (packet[4] << 8), packet[3]
