"""Data models for calibration parameters, controller identity, monitoring and BMS telemetry."""

from .controller import ControllerModel
from .parameters import (
    ParameterDef,
    ParamSize,
    ParamType,
    SafetyLevel,
    ParamCategory,
    read_param,
    write_param,
    get_parameters,
)
from .calibration import CalibrationData
from .monitor import MonitorData, MonitorParam
from .bms import BmsType, BmsUuids, BmsData
