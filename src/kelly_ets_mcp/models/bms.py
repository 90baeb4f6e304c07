"""Battery management system identifiers and telemetry snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class BmsType(Enum):
    NONE = "None"
    JK_BMS = "JK BMS"
    JBD_BMS = "JBD BMS"
    ANT_BMS = "Ant BMS"
    DALY_BMS = "Daly BMS"

    @property
    def label(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> BmsType:
        """Accept either the enum name (``"JK_BMS"``, ``"jk"``) or the label."""
        key = name.strip().upper().replace(" ", "_").replace("-", "_")
        for member in cls:
            if key in (member.name, member.name.removesuffix("_BMS")):
                return member
            if name.strip().lower() == member.value.lower():
                return member
        raise ValueError(f"Unknown BMS type: {name!r}")


@dataclass(frozen=True)
class BmsUuids:
    """GATT service and characteristic UUIDs for one BMS vendor."""

    service: str
    notify: str
    write: str


def _uuid16(short: str) -> str:
    return f"0000{short}-0000-1000-8000-00805f9b34fb"


JK_UUIDS = BmsUuids(_uuid16("ffe0"), _uuid16("ffe1"), _uuid16("ffe1"))
JBD_UUIDS = BmsUuids(_uuid16("ff00"), _uuid16("ff01"), _uuid16("ff02"))
ANT_UUIDS = BmsUuids(_uuid16("ffe0"), _uuid16("ffe1"), _uuid16("ffe1"))
DALY_UUIDS = BmsUuids(_uuid16("fff0"), _uuid16("fff1"), _uuid16("fff2"))


@dataclass(frozen=True)
class BmsData:
    """Immutable battery telemetry snapshot."""

    voltage: float = 0.0
    current: float = 0.0
    power: float = 0.0
    soc: float = 0.0
    charge: float = 0.0  # remaining Ah
    capacity: float = 0.0  # full Ah
    num_cycles: int = 0
    cell_voltages: tuple[float, ...] = field(default_factory=tuple)
    temperatures: tuple[float, ...] = field(default_factory=tuple)
    charge_enabled: bool = False
    discharge_enabled: bool = False
    is_connected: bool = False

    @property
    def cell_delta(self) -> float:
        if not self.cell_voltages:
            return 0.0
        return max(self.cell_voltages) - min(self.cell_voltages)

    def to_dict(self) -> dict:
        return {
            "voltage": round(self.voltage, 3),
            "current": round(self.current, 3),
            "power": round(self.power, 2),
            "soc": self.soc,
            "charge_ah": round(self.charge, 3),
            "capacity_ah": round(self.capacity, 3),
            "num_cycles": self.num_cycles,
            "cell_voltages": [round(v, 3) for v in self.cell_voltages],
            "cell_delta": round(self.cell_delta, 3),
            "temperatures": list(self.temperatures),
            "charge_enabled": self.charge_enabled,
            "discharge_enabled": self.discharge_enabled,
            "is_connected": self.is_connected,
        }
