"""Controller model detection from the calibration image header."""

from __future__ import annotations

from enum import Enum

from ..protocol.errors import UnsupportedController
from ..protocol.result import Result

MIN_FIRMWARE_VERSION = 262
KBLS_0109_FIRMWARE_VERSION = 265


class ControllerModel(Enum):
    """Supported KBLS firmware generations."""

    KBLS_0106 = "KBLS_0106"  # firmware 262-264
    KBLS_0109 = "KBLS_0109"  # firmware 265+

    @classmethod
    def detect(cls, module_name: str, software_version: int) -> Result[ControllerModel]:
        """Pick the model from the module name and firmware version.

        The name is the 8-character ASCII string at image offset 0, e.g.
        ``"KBLS7218"`` or ``"KLS7218S"``. Names whose characters 1-3 read
        ``BLS`` or ``BSS``, or whose characters 1-2 read ``LS``, belong to
        the KBLS family.
        """
        if len(module_name) < 4:
            return Result.failure(
                UnsupportedController(f"Module name too short: '{module_name}'")
            )

        if module_name[1:4] not in ("BLS", "BSS") and module_name[1:3] != "LS":
            return Result.failure(
                UnsupportedController(
                    f"Unsupported controller type: '{module_name}'. "
                    "Only KBLS (KLS) series is supported."
                )
            )

        if software_version >= KBLS_0109_FIRMWARE_VERSION:
            return Result.success(cls.KBLS_0109)
        if software_version >= MIN_FIRMWARE_VERSION:
            return Result.success(cls.KBLS_0106)
        return Result.failure(
            UnsupportedController(
                f"Unsupported firmware version: {software_version}. "
                f"Minimum required: {MIN_FIRMWARE_VERSION}"
            )
        )
