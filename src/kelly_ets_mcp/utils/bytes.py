"""Fixed-width integer readers and hex helpers for raw frames."""

from __future__ import annotations


def u8(data: bytes, offset: int) -> int:
    return data[offset] & 0xFF


def u16_le(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 2], "little")


def i16_le(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 2], "little", signed=True)


def u32_le(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 4], "little")


def i32_le(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 4], "little", signed=True)


def u16_be(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 2], "big")


def i16_be(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 2], "big", signed=True)


def u32_be(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 4], "big")


def to_hex_string(data: bytes) -> str:
    """Format bytes as ``"0A,FF,..."`` (uppercase, comma separated)."""
    return ",".join(f"{b:02X}" for b in data)


def hex_to_bytes(text: str) -> bytes:
    """Parse a ``"0A,FF,..."`` string back into bytes.

    An empty string or the literal ``"ERROR"`` yields a single zero byte.
    """
    if not text or text == "ERROR":
        return b"\x00"
    return bytes(int(part.strip(), 16) for part in text.split(","))
