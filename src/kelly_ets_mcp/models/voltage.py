"""Allowed Low/Over Volt limits per controller voltage class."""

from __future__ import annotations

# voltage code -> (min V, max V)
VOLTAGE_RANGES: dict[int, tuple[int, int]] = {
    11: (18, 132),
    12: (18, 136),
    14: (18, 180),
    16: (18, 200),
    24: (8, 35),
    32: (18, 380),
    36: (18, 45),
    48: (18, 62),
    60: (18, 80),
    72: (18, 90),
    84: (18, 105),
    96: (18, 120),
}

VOLTAGE_CODE_OFFSET = 3  # two ASCII digits
CONTROLLER_VOLT_OFFSET = 23  # big-endian word
CODE_80 = 80


def range_for_code_80(controller_volt: int) -> tuple[int, int]:
    """Code 80 controllers allow up to 125% of their rated voltage."""
    return 18, controller_volt * 125 // 100


def get_voltage_range(voltage_code: str, controller_volt: int) -> tuple[int, int]:
    """Return ``(min, max)`` for a voltage code string, or ``(0, 0)`` if unknown."""
    try:
        code = int(voltage_code)
    except ValueError:
        return 0, 0
    if code == CODE_80:
        return range_for_code_80(controller_volt)
    return VOLTAGE_RANGES.get(code, (0, 0))


def voltage_range_from_image(data: bytes) -> tuple[int, int]:
    """Read the voltage code and rated voltage from a calibration image."""
    code = bytes(data[VOLTAGE_CODE_OFFSET : VOLTAGE_CODE_OFFSET + 2]).decode("latin-1")
    controller_volt = int.from_bytes(
        data[CONTROLLER_VOLT_OFFSET : CONTROLLER_VOLT_OFFSET + 2], "big"
    )
    return get_voltage_range(code, controller_volt)
