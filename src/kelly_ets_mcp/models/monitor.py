"""Real-time monitor register layout.

USER_MONITOR1..3 (0x3A-0x3C) each return 16 bytes, concatenated into a
48-byte buffer in command order.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..protocol.commands import EtsCommand
from . import error_codes
from .parameters import ParamSize, ParamType, read_param

MONITOR_COMMANDS = (
    EtsCommand.USER_MONITOR1,
    EtsCommand.USER_MONITOR2,
    EtsCommand.USER_MONITOR3,
)

ERROR_STATUS = "Error Status"


@dataclass(frozen=True)
class MonitorParam:
    offset: int
    size: ParamSize
    position: int
    type: ParamType
    name: str
    min_value: int
    max_value: int
    tips: str

    @property
    def length(self) -> int:
        return self.position + 1 if self.size == ParamSize.WORD else 1


def _flag(offset: int, name: str, tips: str) -> MonitorParam:
    return MonitorParam(offset, ParamSize.BYTE, 0, ParamType.UNSIGNED, name, 0, 2, tips)


PARAMETERS: tuple[MonitorParam, ...] = (
    MonitorParam(16, ParamSize.WORD, 1, ParamType.HEX, ERROR_STATUS, 0, 65535,
                 "Error status bitmask"),
    MonitorParam(0, ParamSize.BYTE, 0, ParamType.UNSIGNED, "TPS Pedel", 0, 255,
                 "Throttle AD, 0-255 = 0-5V"),
    MonitorParam(1, ParamSize.BYTE, 0, ParamType.UNSIGNED, "Brake Pedel", 0, 255,
                 "Brake AD, 0-255 = 0-5V"),
    _flag(2, "Brake Switch", "Brake switch status"),
    _flag(3, "Foot Switch", "Throttle safety switch"),
    _flag(4, "Forward Switch", "Forward switch status"),
    _flag(5, "Reversed", "Reverse switch status"),
    _flag(6, "Hall A", "Hall sensor A"),
    _flag(7, "Hall B", "Hall sensor B"),
    _flag(8, "Hall C", "Hall sensor C"),
    MonitorParam(9, ParamSize.BYTE, 0, ParamType.UNSIGNED, "B+ Volt", 0, 200,
                 "Battery voltage"),
    MonitorParam(10, ParamSize.BYTE, 0, ParamType.UNSIGNED, "Motor Temp", 0, 150,
                 "Motor temperature C"),
    MonitorParam(11, ParamSize.BYTE, 0, ParamType.UNSIGNED, "Controller Temp", 0, 150,
                 "Controller temperature C"),
    _flag(12, "Setting Dir", "Set direction: 0=forward, 1=reverse"),
    _flag(13, "Actual Dir", "Actual direction: 0=forward, 1=reverse"),
    _flag(14, "Brake Switch2", "Brake switch 2 status"),
    _flag(15, "Low Speed", "Low speed status"),
    MonitorParam(18, ParamSize.WORD, 1, ParamType.UNSIGNED, "Motor Speed", 0, 10000,
                 "Motor speed RPM"),
    MonitorParam(20, ParamSize.WORD, 1, ParamType.UNSIGNED, "Phase Current", 0, 800,
                 "Phase current RMS"),
)


def read_monitor_values(buffer: bytes) -> dict[str, str]:
    """Decode every parameter that fits inside ``buffer``."""
    values: dict[str, str] = {}
    for param in PARAMETERS:
        if param.offset + param.length <= len(buffer):
            values[param.name] = read_param(
                buffer, param.offset, param.size, param.position, param.type
            )
    return values


@dataclass
class MonitorData:
    """One decoded monitor snapshot."""

    values: dict[str, str] = field(default_factory=dict)
    error_status: int = 0
    error_messages: list[str] = field(default_factory=list)
    is_active: bool = False
    communication_error: str | None = None

    @classmethod
    def from_buffer(cls, buffer: bytes, is_active: bool = True) -> MonitorData:
        values = read_monitor_values(buffer)
        try:
            error_status = int(values.get(ERROR_STATUS, "0"), 16)
        except ValueError:
            error_status = 0
        return cls(
            values=values,
            error_status=error_status,
            error_messages=error_codes.decode(error_status),
            is_active=is_active,
        )

    def to_dict(self) -> dict:
        return {
            "values": dict(self.values),
            "error_status": f"0x{self.error_status:04X}",
            "errors": list(self.error_messages),
            "is_active": self.is_active,
            "communication_error": self.communication_error,
        }
