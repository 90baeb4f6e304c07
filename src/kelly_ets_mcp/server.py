"""MCP server entry point for Kelly KBLS motor controllers and BLE battery monitors.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .bms.client import BmsClient
from .models import error_codes
from .models.bms import BmsType
from .models.calibration import CalibrationData
from .models.monitor import PARAMETERS as MONITOR_PARAMETERS
from .models.parameters import ParamCategory, SafetyLevel
from .protocol.commands import DATA_BUFFER_SIZE
from .protocol.result import Result
from .session import ControllerSession
from .transport import TransportType, list_serial_ports as _list_ports
from .utils.bytes import hex_to_bytes, to_hex_string

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "kelly-ets",
    instructions="MCP server for Kelly KBLS motor controllers and BLE battery management systems",
)

# Global connection state
_session = ControllerSession()
_bms = BmsClient()


def _get_session() -> ControllerSession:
    """Get the connected controller session, raising if not connected."""
    if not _session.state.is_connected:
        raise RuntimeError(
            "Not connected to controller. Use the 'connect' tool first."
        )
    return _session


def _get_calibration() -> CalibrationData:
    calibration = _get_session().calibration
    if calibration is None:
        raise RuntimeError("No calibration data. Use 'read_calibration' first.")
    return calibration


def _unwrap(result: Result, action: str):
    if not result.ok:
        raise RuntimeError(f"{action} failed: {result.error}")
    return result.value


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_serial_ports() -> dict[str, Any]:
    """List serial ports. FTDI USB-serial bridges (the Kelly USB cable) come first."""
    return {"ports": [p.to_dict() for p in _list_ports()]}


@mcp.tool()
def connect(port: str, transport: str = "usb") -> dict[str, Any]:
    """Connect to a Kelly controller and identify it.

    Opens flash, reads the 512-byte calibration image and detects the
    controller model from its module name and firmware version. Live
    monitoring starts automatically.

    Args:
        port: Serial device (e.g. "/dev/ttyUSB0", "COM3"). Ignored for "mock".
        transport: "usb", "bluetooth_classic" (RFCOMM serial port) or "mock"
            (built-in simulated controller).
    """
    try:
        transport_type = TransportType(transport.lower())
    except ValueError:
        return {"error": f"Unknown transport '{transport}'. Use usb, bluetooth_classic or mock."}

    state = _unwrap(_session.connect(port, transport_type), "Connect")
    return {"connected": True, **state.to_dict()}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Stop monitoring and close the controller connection."""
    _session.disconnect()
    return {"disconnected": True}


@mcp.tool()
def get_device_info() -> dict[str, Any]:
    """Controller identity: module name, firmware version, detected model."""
    session = _get_session()
    info = session.state.to_dict()
    calibration = session.calibration
    if calibration is not None:
        info["user_name"] = calibration.read(calibration.find("User Name"))
        info["serial_number"] = calibration.read(calibration.find("Serial Number"))
    reported = session.read_firmware_version()
    if reported.ok:
        info["reported_version"] = reported.value
    else:
        logger.warning("Version query failed: %s", reported.error)
    return info


# ─── CALIBRATION TOOLS ────────────────────────────────────────────────

@mcp.tool()
def read_calibration(page: int | None = None) -> dict[str, Any]:
    """Read the calibration image from the controller.

    Pauses live monitoring during the transfer.

    Args:
        page: Optional page (0-2, 128 offsets each) to return. All visible
            parameters are returned when omitted.
    """
    if page is not None and not 0 <= page <= 2:
        return {"error": "Page must be 0-2"}
    calibration = _unwrap(_get_session().read_calibration(), "Read calibration")
    return calibration.to_dict(page)


@mcp.tool()
def list_parameters(page: int | None = None, category: str | None = None) -> dict[str, Any]:
    """List calibration parameters with their current values.

    Args:
        page: Restrict to one page (0-2).
        category: Restrict to a category (e.g. "Throttle", "Protection").
    """
    calibration = _get_calibration()
    params = (
        calibration.parameters_for_page(page)
        if page is not None
        else [p for p in calibration.parameters if p.visible]
    )
    if category:
        wanted = category.strip().lower()
        valid = {c.value.lower() for c in ParamCategory} | {c.name.lower() for c in ParamCategory}
        if wanted not in valid:
            return {"error": f"Unknown category '{category}'"}
        params = [
            p for p in params
            if wanted in (p.category.value.lower(), p.category.name.lower())
        ]
    return {
        "model": calibration.model.value,
        "parameters": [{**p.to_dict(), "value": calibration.read(p)} for p in params],
    }


@mcp.tool()
def get_parameter(name: str) -> dict[str, Any]:
    """Read one calibration parameter from the host copy of the image.

    Args:
        name: Parameter name (case-insensitive), e.g. "TPS Dead Low".
    """
    calibration = _get_calibration()
    param = calibration.find(name)
    if param is None:
        return {"error": f"Unknown parameter '{name}'"}
    lo, hi = calibration.limits(param)
    return {**param.to_dict(), "value": calibration.read(param), "min": lo, "max": hi}


@mcp.tool()
def set_parameter(name: str, value: str, confirm_dangerous: bool = False) -> dict[str, Any]:
    """Change one parameter in the host copy of the image.

    Nothing is sent to the controller until 'write_calibration' is called.

    Args:
        name: Parameter name (case-insensitive).
        value: New value in the parameter's text form (decimal, hex, ASCII or 0/1).
        confirm_dangerous: Must be True to change a DANGEROUS parameter.
    """
    calibration = _get_calibration()
    param = calibration.find(name)
    if param is None:
        return {"error": f"Unknown parameter '{name}'"}
    if param.safety == SafetyLevel.DANGEROUS and not confirm_dangerous:
        return {
            "error": f"{param.name} is marked DANGEROUS. "
                     "Repeat with confirm_dangerous=True to change it.",
        }

    reason = calibration.check_value(param, value)
    if reason is not None:
        return {"error": reason}

    old = calibration.read(param)
    if not calibration.update_parameter(param, value):
        return {"error": f"Invalid value '{value}' for {param.name}"}
    return {
        "name": param.name,
        "old_value": old,
        "new_value": calibration.read(param),
        "pending_write": True,
    }


@mcp.tool()
def write_calibration() -> dict[str, Any]:
    """Write the host copy of the image to the controller and burn it to flash.

    Pauses live monitoring during the transfer. Burning can take several
    seconds.
    """
    session = _get_session()
    calibration = _get_calibration()
    _unwrap(session.write_calibration(calibration), "Write calibration")
    return {"written": True, "bytes": DATA_BUFFER_SIZE}


@mcp.tool()
def export_calibration(output_path: str) -> dict[str, Any]:
    """Save the host copy of the image to a JSON file.

    Args:
        output_path: File path for the export.
    """
    calibration = _get_calibration()
    path = Path(output_path)
    path.write_text(json.dumps({
        "module_name": calibration.module_name,
        "software_version": calibration.software_version,
        "model": calibration.model.value,
        "data": to_hex_string(calibration.data_value),
    }, indent=2))
    logger.info("Exported calibration to %s", path)
    return {"path": str(path), "bytes": DATA_BUFFER_SIZE}


@mcp.tool()
def import_calibration(input_path: str) -> dict[str, Any]:
    """Load an exported image into the host copy (not written to the controller).

    The file must come from a controller with the same module name.

    Args:
        input_path: Path to a file written by 'export_calibration'.
    """
    path = Path(input_path)
    if not path.exists():
        return {"error": f"File not found: {input_path}"}

    current = _get_calibration()
    try:
        payload = json.loads(path.read_text())
        data = hex_to_bytes(payload["data"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        return {"error": f"Invalid calibration file: {e}"}
    if len(data) != DATA_BUFFER_SIZE:
        return {"error": f"Expected {DATA_BUFFER_SIZE} bytes, file has {len(data)}"}

    imported = CalibrationData(current.model, bytearray(data), list(current.parameters))
    if imported.module_name != current.module_name:
        return {
            "error": f"File is for {imported.module_name!r}, "
                     f"controller is {current.module_name!r}",
        }
    current.data_value[:] = imported.data_value
    logger.info("Imported calibration from %s", path)
    return {"imported": True, "pending_write": True, "module_name": current.module_name}


# ─── MONITOR TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def start_monitor() -> dict[str, Any]:
    """Start polling live controller values in the background."""
    return {"monitoring": _get_session().start_monitor()}


@mcp.tool()
def stop_monitor() -> dict[str, bool]:
    """Stop live polling."""
    _session.stop_monitor()
    return {"monitoring": False}


@mcp.tool()
def get_monitor() -> dict[str, Any]:
    """Latest live values: throttle, brake, switches, hall sensors, voltage,
    temperatures, speed, phase current and decoded fault flags."""
    session = _get_session()
    return {"monitoring": session.monitoring, **session.monitor_data.to_dict()}


@mcp.tool()
def read_phase_current_zero() -> dict[str, Any]:
    """Read the 10 phase-current zero-point AD values (around 128 when healthy)."""
    values = _unwrap(_get_session().read_phase_current_zero(), "Phase current read")
    return {"values": values}


@mcp.tool()
def decode_error_code(code: int) -> dict[str, Any]:
    """Decode a 16-bit controller fault bitmask into fault names.

    Args:
        code: Error status value (0-65535).
    """
    return {"code": f"0x{code & 0xFFFF:04X}", "errors": error_codes.decode(code)}


# ─── BMS TOOLS ────────────────────────────────────────────────────────

def _parse_bms_type(bms_type: str) -> BmsType:
    try:
        return BmsType.from_name(bms_type)
    except ValueError:
        raise RuntimeError(
            f"Unknown BMS type '{bms_type}'. Use jk, jbd, ant or daly."
        ) from None


@mcp.tool()
async def bms_scan(bms_type: str, timeout: float = 5.0) -> dict[str, Any]:
    """Scan for BLE battery management systems of one vendor.

    Args:
        bms_type: "jk", "jbd", "ant" or "daly".
        timeout: Scan duration in seconds.
    """
    kind = _parse_bms_type(bms_type)
    devices = await _bms.scan(kind, timeout)
    return {"type": kind.label, "devices": [d.to_dict() for d in devices]}


@mcp.tool()
async def bms_connect(address: str, bms_type: str) -> dict[str, Any]:
    """Connect to a BMS and start streaming/polling its telemetry.

    Args:
        address: BLE address from 'bms_scan'.
        bms_type: "jk", "jbd", "ant" or "daly".
    """
    kind = _parse_bms_type(bms_type)
    _unwrap(await _bms.connect(address, kind), "BMS connect")
    return {"connected": True, "type": kind.label, "status": _bms.status_message}


@mcp.tool()
async def bms_disconnect() -> dict[str, bool]:
    """Disconnect from the BMS."""
    await _bms.disconnect()
    return {"disconnected": True}


@mcp.tool()
def bms_status() -> dict[str, Any]:
    """Latest battery snapshot: voltage, current, SOC, cells, temperatures."""
    return {
        "type": _bms.bms_type.label,
        "status": _bms.status_message,
        "stale": _bms.is_stale(),
        "data": _bms.data.to_dict(),
    }


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("kelly://device/status")
def resource_device_status() -> str:
    """Controller connection state and monitoring flag."""
    return json.dumps({**_session.state.to_dict(), "monitoring": _session.monitoring})


@mcp.resource("kelly://errors/codes")
def resource_error_codes() -> str:
    """Fault names by bit position."""
    return json.dumps({
        "errors": [
            {"bit": bit, "mask": f"0x{1 << bit:04X}", "name": name}
            for bit, name in enumerate(error_codes.ERROR_NAMES)
        ]
    })


@mcp.resource("kelly://monitor/parameters")
def resource_monitor_parameters() -> str:
    """Live monitor channels with ranges."""
    return json.dumps({
        "parameters": [
            {"name": p.name, "min": p.min_value, "max": p.max_value, "tips": p.tips}
            for p in MONITOR_PARAMETERS
        ]
    })


@mcp.resource("kelly://bms/types")
def resource_bms_types() -> str:
    """Supported BMS vendors."""
    return json.dumps({
        "types": [
            {"name": t.name, "label": t.label}
            for t in BmsType if t != BmsType.NONE
        ]
    })


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def diagnose_faults() -> str:
    """Guide the AI through diagnosing an active controller fault."""
    return """Use get_monitor to read the live values and the decoded fault list.
For each active fault:
- Over/Low Volt: compare "B+ Volt" against the Low Volt / Over Volt parameters
- Hall Sensor Error: check whether Hall A/B/C change while the wheel turns
- High Pedel / Pedel Error: check "TPS Pedel" at rest and the TPS Dead Low setting
- Overtemp / Motor OverTemp Err: compare temperatures with High Temp Cut

Use get_parameter to read the relevant limits. Suggest changes, but only
apply them with set_parameter and write_calibration after confirmation."""


@mcp.prompt()
def tune_throttle(goal: str) -> str:
    """Adjust throttle response toward a goal.

    Args:
        goal: Desired feel (e.g. "softer start", "less dead zone").
    """
    return f"""Read the Throttle category with list_parameters(category="Throttle").
Watch "TPS Pedel" in get_monitor while the throttle is released and fully pressed.
Propose TPS Dead Low / TPS Dead High / TPS Low / TPS High values for: {goal}

Apply with set_parameter, then write_calibration to burn them to the controller."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
