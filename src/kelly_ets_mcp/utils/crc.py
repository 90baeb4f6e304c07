"""Checksums shared by the ETS protocol and the BMS decoders."""

from __future__ import annotations


def sum8(data: bytes, start: int = 0, end: int | None = None) -> int:
    """Byte-sum checksum truncated to 8 bits.

    Used as the ETS packet checksum (command + length + data) and by the
    JK and Daly BMS frames.
    """
    if end is None:
        end = len(data)
    return sum(data[start:end]) & 0xFF


def crc16_modbus(data: bytes, start: int = 0, end: int | None = None) -> int:
    """CRC-16/MODBUS (reflected polynomial 0xA001, init 0xFFFF).

    Used by ANT BMS frames.
    """
    if end is None:
        end = len(data)
    crc = 0xFFFF
    for byte in data[start:end]:
        crc ^= byte
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc & 0xFFFF
