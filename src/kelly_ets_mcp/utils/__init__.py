"""Shared byte-level helpers: checksums and integer readers."""

from .crc import sum8, crc16_modbus
