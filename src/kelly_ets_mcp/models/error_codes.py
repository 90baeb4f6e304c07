"""Controller fault bitmask decoding."""

from __future__ import annotations

# Indexed by bit position.
ERROR_NAMES: tuple[str, ...] = (
    "Identify Err",
    "Over Volt",
    "Low Volt",
    "Reserved",
    "Locking",
    "V+ Err",
    "Overtemp",
    "High Pedel",
    "Reserved",
    "Reset Error",
    "Pedel Error",
    "Hall Sensor Error",
    "Reserved",
    "Emergency Rev Err",
    "Motor OverTemp Err",
    "Current Meter Err",
)


def decode(error_code: int) -> list[str]:
    """Return the names of the set bits, lowest bit first.

    Codes outside 1..65535 decode to no errors.
    """
    if error_code <= 0 or error_code > 0xFFFF:
        return []
    return [name for bit, name in enumerate(ERROR_NAMES) if (error_code >> bit) & 1]


def decode_to_string(error_code: int) -> str:
    return ",".join(decode(error_code))
