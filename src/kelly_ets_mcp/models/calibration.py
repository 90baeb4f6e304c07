"""Host-side copy of the controller calibration image."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..protocol.commands import DATA_BUFFER_SIZE
from .controller import ControllerModel
from .parameters import (
    PAGE_COUNT,
    PAGE_SIZE,
    ParameterDef,
    ParamSize,
    ParamType,
    get_parameters,
    read_param,
)
from .voltage import voltage_range_from_image

logger = logging.getLogger(__name__)

MODULE_NAME_OFFSET = 0
SOFTWARE_VERSION_OFFSET = 16

# Checked against the controller's voltage class instead of their own limits.
VOLTAGE_LIMITED = frozenset({"Low Volt", "Over Volt"})


def module_name_of(data: bytes) -> str:
    return read_param(data, MODULE_NAME_OFFSET, ParamSize.WORD, 7, ParamType.ASCII)


def software_version_of(data: bytes) -> int:
    return int(read_param(data, SOFTWARE_VERSION_OFFSET, ParamSize.WORD, 1, ParamType.UNSIGNED))


@dataclass
class CalibrationData:
    """A 512-byte calibration image with the parameter set of its model.

    The image is split into three pages of 128 offsets for display.
    """

    model: ControllerModel
    data_value: bytearray
    parameters: list[ParameterDef] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.data_value) != DATA_BUFFER_SIZE:
            raise ValueError(
                f"Calibration image must be {DATA_BUFFER_SIZE} bytes, got {len(self.data_value)}"
            )
        self.data_value = bytearray(self.data_value)
        if not self.parameters:
            self.parameters = get_parameters(self.model)

    @property
    def total_pages(self) -> int:
        return PAGE_COUNT

    @property
    def module_name(self) -> str:
        return module_name_of(self.data_value)

    @property
    def software_version(self) -> int:
        return software_version_of(self.data_value)

    def parameters_for_page(self, page: int) -> list[ParameterDef]:
        start = page * PAGE_SIZE
        end = start + PAGE_SIZE
        return [p for p in self.parameters if start <= p.offset < end and p.visible]

    def find(self, name: str) -> ParameterDef | None:
        key = name.strip().lower()
        for param in self.parameters:
            if param.name.lower() == key:
                return param
        return None

    def read(self, param: ParameterDef) -> str:
        return param.read(self.data_value)

    def limits(self, param: ParameterDef) -> tuple[int, int]:
        """Effective ``(min, max)`` for a numeric parameter."""
        if param.name in VOLTAGE_LIMITED:
            lo, hi = voltage_range_from_image(self.data_value)
            if (lo, hi) != (0, 0):
                return lo, hi
        return param.min_value, param.max_value

    def check_value(self, param: ParameterDef, value: str) -> str | None:
        """Return why ``value`` cannot be written to ``param``, or None if it can."""
        if not param.editable:
            return f"{param.name} is read-only"
        if param.type not in (ParamType.UNSIGNED, ParamType.SIGNED) or param.size == ParamSize.BIT:
            return None
        try:
            number = int(value)
        except ValueError:
            return f"{param.name} expects an integer, got '{value}'"
        lo, hi = self.limits(param)
        if not lo <= number <= hi:
            return f"{param.name} must be between {lo} and {hi}, got {number}"
        return None

    def update_parameter(self, param: ParameterDef, value: str) -> bool:
        """Validate and write one value into the image.

        Blank input is ignored. Returns True only when the image changed.
        """
        if not value.strip():
            return False
        reason = self.check_value(param, value)
        if reason is not None:
            logger.debug("Rejected %s=%r: %s", param.name, value, reason)
            return False
        try:
            return param.write(self.data_value, value)
        except ValueError:
            return False

    def values(self) -> dict[str, str]:
        return {p.name: self.read(p) for p in self.parameters if p.visible}

    def copy(self) -> CalibrationData:
        return CalibrationData(self.model, bytearray(self.data_value), list(self.parameters))

    def to_dict(self, page: int | None = None) -> dict:
        params = (
            self.parameters_for_page(page)
            if page is not None
            else [p for p in self.parameters if p.visible]
        )
        return {
            "model": self.model.value,
            "module_name": self.module_name,
            "software_version": self.software_version,
            "page": page,
            "parameters": [
                {**p.to_dict(), "value": self.read(p)} for p in params
            ],
        }
