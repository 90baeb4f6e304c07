"""Calibration parameter definitions and the codec that reads/writes them.

A parameter is addressed by ``(offset, size, position, type)`` inside the
512-byte calibration image (DataValue):

- BIT: bit ``position`` of the byte at ``offset``
- BYTE: the byte at ``offset``
- WORD: ``position + 1`` bytes starting at ``offset``, big-endian

``type`` selects the text form: decimal (UNSIGNED), lowercase hex pairs
(HEX), one character per byte (ASCII) or a two's-complement byte (SIGNED).

Write failures come in two kinds. BIT, HEX and ASCII return ``False`` and
leave the image untouched. BYTE, WORD and SIGNED raise ``ValueError`` for
input that is not an integer or does not fit, and callers are expected to
catch it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

from .controller import ControllerModel

PAGE_SIZE = 128
PAGE_COUNT = 3


class ParamSize(IntEnum):
    BIT = 0
    BYTE = 1
    WORD = 2


class ParamType(Enum):
    UNSIGNED = "uo"
    HEX = "h"
    ASCII = "a"
    SIGNED = "so"


class SafetyLevel(Enum):
    """How risky it is to change a parameter."""

    READ_ONLY = "read_only"
    SAFE = "safe"
    CAUTION = "caution"
    DANGEROUS = "dangerous"


class ParamCategory(Enum):
    GENERAL = "General"
    PROTECTION = "Protection"
    THROTTLE = "Throttle"
    BRAKING = "Braking"
    SPEED = "Speed & Frequency"
    MOTOR = "Motor Configuration"
    PID_TUNING = "PID Tuning"
    ADVANCED = "Advanced"


def _byte_length(size: ParamSize, position: int) -> int:
    return position + 1 if size == ParamSize.WORD else 1


def read_param(
    data: bytes,
    offset: int,
    size: ParamSize,
    position: int,
    type: ParamType,
) -> str:
    """Read a parameter from the image and return its text form."""
    length = _byte_length(size, position)

    if type == ParamType.UNSIGNED:
        if size == ParamSize.BIT:
            return str((data[offset] >> position) & 1)
        if size == ParamSize.BYTE:
            return str(data[offset])
        return str(int.from_bytes(data[offset : offset + length], "big"))

    if type == ParamType.HEX:
        return "".join(f"{b:02x}" for b in data[offset : offset + length])

    if type == ParamType.ASCII:
        return "".join(chr(b) for b in data[offset : offset + length])

    # SIGNED
    value = data[offset]
    return str(value - 256 if value > 127 else value)


def write_param(
    data: bytearray,
    offset: int,
    size: ParamSize,
    position: int,
    type: ParamType,
    value: str,
) -> bool:
    """Write a text value into the image.

    Returns:
        True if written, False for a BIT/HEX/ASCII format error.

    Raises:
        ValueError: For BYTE/WORD/SIGNED input that is not an integer or
            does not fit in the target bytes.
    """
    length = _byte_length(size, position)

    if type == ParamType.UNSIGNED:
        if size == ParamSize.BIT:
            if value == "1":
                data[offset] |= 1 << position
                return True
            if value == "0":
                data[offset] &= ~(1 << position) & 0xFF
                return True
            return False

        number = int(value)
        limit = 256 ** length
        if not 0 <= number < limit:
            raise ValueError(f"{number} out of range 0..{limit - 1}")
        data[offset : offset + length] = number.to_bytes(length, "big")
        return True

    if type == ParamType.HEX:
        if len(value) != length * 2:
            return False
        try:
            raw = bytes.fromhex(value)
        except ValueError:
            return False
        if len(raw) != length:
            return False
        data[offset : offset + length] = raw
        return True

    if type == ParamType.ASCII:
        if len(value) != length or any(ord(c) > 0xFF for c in value):
            return False
        data[offset : offset + length] = bytes(ord(c) for c in value)
        return True

    # SIGNED
    number = int(value)
    if not -128 <= number <= 127:
        raise ValueError(f"{number} out of range -128..127")
    data[offset] = number & 0xFF
    return True


@dataclass(frozen=True)
class ParameterDef:
    """One named calibration field."""

    offset: int
    size: ParamSize
    position: int
    type: ParamType
    name: str
    safety: SafetyLevel
    category: ParamCategory
    visible: bool = True
    editable: bool = True
    min_value: int = 0
    max_value: int = 255
    tips: str = ""

    @property
    def page(self) -> int:
        return self.offset // PAGE_SIZE

    def read(self, data: bytes) -> str:
        return read_param(data, self.offset, self.size, self.position, self.type)

    def write(self, data: bytearray, value: str) -> bool:
        return write_param(data, self.offset, self.size, self.position, self.type, value)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "offset": self.offset,
            "size": self.size.name,
            "position": self.position,
            "type": self.type.name,
            "safety": self.safety.value,
            "category": self.category.value,
            "editable": self.editable,
            "min": self.min_value,
            "max": self.max_value,
            "tips": self.tips,
        }


_S = ParamSize
_T = ParamType
_L = SafetyLevel
_C = ParamCategory


def _bit(offset: int, pos: int, name: str, safety: SafetyLevel,
         category: ParamCategory, tips: str = "") -> ParameterDef:
    return ParameterDef(offset, _S.BIT, pos, _T.UNSIGNED, name, safety, category,
                        min_value=0, max_value=1, tips=tips)


def _byte(offset: int, name: str, safety: SafetyLevel, category: ParamCategory,
          lo: int = 0, hi: int = 255, tips: str = "") -> ParameterDef:
    return ParameterDef(offset, _S.BYTE, 0, _T.UNSIGNED, name, safety, category,
                        min_value=lo, max_value=hi, tips=tips)


def _word(offset: int, name: str, safety: SafetyLevel, category: ParamCategory,
          lo: int = 0, hi: int = 65535, tips: str = "") -> ParameterDef:
    return ParameterDef(offset, _S.WORD, 1, _T.UNSIGNED, name, safety, category,
                        min_value=lo, max_value=hi, tips=tips)


# Offsets shared by every KBLS firmware.
_COMMON: tuple[ParameterDef, ...] = (
    ParameterDef(0, _S.WORD, 7, _T.ASCII, "Module Name", _L.READ_ONLY, _C.GENERAL,
                 editable=False, tips="Controller model string"),
    ParameterDef(8, _S.WORD, 3, _T.ASCII, "User Name", _L.SAFE, _C.GENERAL,
                 tips="Four characters, free text"),
    ParameterDef(12, _S.WORD, 3, _T.HEX, "Serial Number", _L.READ_ONLY, _C.GENERAL,
                 editable=False),
    ParameterDef(16, _S.WORD, 1, _T.UNSIGNED, "Software Version", _L.READ_ONLY,
                 _C.GENERAL, editable=False, min_value=0, max_value=65535),
    _bit(20, 0, "Startup H-Pedel", _L.SAFE, _C.THROTTLE,
         "Refuse to start while the throttle is pressed"),
    _bit(20, 1, "Brake H-Pedel", _L.SAFE, _C.BRAKING,
         "Refuse to start while the brake is pressed"),
    _bit(20, 2, "NTL H-Pedel", _L.SAFE, _C.THROTTLE,
         "Neutral high-pedal lockout"),
    _bit(21, 0, "Foot Switch", _L.SAFE, _C.THROTTLE,
         "Require the throttle safety switch"),
    _bit(21, 1, "Boost", _L.CAUTION, _C.SPEED),
    _bit(21, 2, "Three Gears Switch", _L.SAFE, _C.SPEED),
    _bit(21, 3, "Reverse", _L.SAFE, _C.SPEED),
    _bit(21, 4, "Cruise", _L.SAFE, _C.SPEED),
    ParameterDef(23, _S.WORD, 1, _T.UNSIGNED, "Controller Volt", _L.READ_ONLY,
                 _C.GENERAL, editable=False, min_value=0, max_value=65535),
    _word(25, "Low Volt", _L.CAUTION, _C.PROTECTION, 18, 90,
          tips="Under-voltage cutback, V"),
    _word(27, "Over Volt", _L.DANGEROUS, _C.PROTECTION, 18, 90,
          tips="Over-voltage cutback, V"),
    _byte(37, "Motor Current%", _L.DANGEROUS, _C.PROTECTION, 20, 100,
          "Motor current limit, percent of rated"),
    _byte(38, "Batt Current%", _L.CAUTION, _C.PROTECTION, 20, 100,
          "Battery current limit, percent of rated"),
    ParameterDef(56, _S.BYTE, 0, _T.HEX, "Identify Angle", _L.READ_ONLY, _C.MOTOR,
                 editable=False),
    _byte(92, "TPS Low", _L.SAFE, _C.THROTTLE, 0, 100, "Throttle zero, percent"),
    _byte(93, "TPS High", _L.SAFE, _C.THROTTLE, 0, 100, "Throttle full, percent"),
    _byte(95, "TPS Type", _L.CAUTION, _C.THROTTLE, 0, 2,
          "0=none, 1=0-5V, 2=1-4V"),
    _byte(96, "TPS Dead Low", _L.SAFE, _C.THROTTLE, 0, 255),
    _byte(97, "TPS Dead High", _L.SAFE, _C.THROTTLE, 0, 255),
    _byte(100, "Brake Type", _L.CAUTION, _C.BRAKING, 0, 2),
    _byte(101, "Brake Dead Low", _L.SAFE, _C.BRAKING, 0, 255),
    _byte(102, "Brake Dead High", _L.SAFE, _C.BRAKING, 0, 255),
    _word(105, "Max Output Fre", _L.DANGEROUS, _C.SPEED, 0, 1000, "Hz"),
    _word(107, "Max Speed", _L.CAUTION, _C.SPEED, 0, 10000, "RPM"),
    _byte(109, "Max Forw Speed%", _L.SAFE, _C.SPEED, 20, 100),
    _byte(110, "Max Rev Speed%", _L.SAFE, _C.SPEED, 20, 100),
    _byte(127, "PWM Frequency", _L.DANGEROUS, _C.ADVANCED, 10, 30, "kHz"),
    _byte(268, "Motor Poles", _L.DANGEROUS, _C.MOTOR, 2, 64),
    _byte(269, "Speed Sensor Type", _L.DANGEROUS, _C.MOTOR, 0, 3,
          "0=none, 1=encoder, 2=hall, 3=resolver"),
)

# Fields added by firmware v265 (KBLS_0109).
_KBLS_0109_EXTRA: tuple[ParameterDef, ...] = (
    _byte(318, "Motor Temp Sensor", _L.CAUTION, _C.PROTECTION, 0, 3,
          "0=none, 1=KTY84, 2=KTY83, 3=PT1000"),
    _byte(319, "High Temp Cut", _L.DANGEROUS, _C.PROTECTION, 0, 150,
          "Motor temperature cutoff, C"),
    _byte(320, "High Temp Resume", _L.CAUTION, _C.PROTECTION, 0, 150,
          "Motor temperature resume, C"),
    ParameterDef(330, _S.BYTE, 0, _T.SIGNED, "Angle Offset", _L.DANGEROUS, _C.MOTOR,
                 visible=False, min_value=-128, max_value=127),
    _byte(340, "Speed Kp", _L.CAUTION, _C.PID_TUNING, 0, 255),
    _byte(341, "Speed Ki", _L.CAUTION, _C.PID_TUNING, 0, 255),
)

_TABLES: dict[ControllerModel, tuple[ParameterDef, ...]] = {
    ControllerModel.KBLS_0106: _COMMON,
    ControllerModel.KBLS_0109: _COMMON + _KBLS_0109_EXTRA,
}


def get_parameters(model: ControllerModel) -> list[ParameterDef]:
    """Return the parameter set for a controller model, ordered by offset."""
    return list(_TABLES[model])


def find_parameter(model: ControllerModel, name: str) -> ParameterDef | None:
    """Look up a parameter by name, ignoring case."""
    key = name.strip().lower()
    for param in _TABLES[model]:
        if param.name.lower() == key:
            return param
    return None
