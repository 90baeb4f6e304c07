"""Tests for the live monitor buffer decoding."""

from kelly_ets_mcp.models.monitor import PARAMETERS, MonitorData, read_monitor_values


def _buffer(**fields) -> bytearray:
    buf = bytearray(48)
    for offset, value in fields.get("bytes", {}).items():
        buf[offset] = value
    return buf


def test_parameter_table():
    assert len(PARAMETERS) == 19
    assert PARAMETERS[0].name == "Error Status"


def test_read_values():
    buf = _buffer(bytes={0: 80, 9: 48, 10: 35})
    buf[18:20] = (1500).to_bytes(2, "big")
    values = read_monitor_values(buf)
    assert values["TPS Pedel"] == "80"
    assert values["B+ Volt"] == "48"
    assert values["Motor Temp"] == "35"
    assert values["Motor Speed"] == "1500"


def test_error_status_is_hex_text():
    buf = _buffer()
    buf[16:18] = b"\x30\x00"
    assert read_monitor_values(buf)["Error Status"] == "3000"


def test_short_buffer_skips_missing_fields():
    values = read_monitor_values(bytes(12))
    assert "Hall C" in values
    assert "Error Status" not in values
    assert "Motor Speed" not in values


def test_monitor_data_decodes_errors():
    buf = _buffer()
    buf[16:18] = b"\x00\x06"
    data = MonitorData.from_buffer(buf)
    assert data.error_status == 6
    assert data.error_messages == ["Over Volt", "Low Volt"]
    assert data.is_active


def test_monitor_data_to_dict():
    buf = _buffer()
    buf[16:18] = b"\x30\x00"
    d = MonitorData.from_buffer(buf).to_dict()
    assert d["error_status"] == "0x3000"
    assert d["errors"] == ["Reserved", "Emergency Rev Err"]
    assert d["communication_error"] is None


def test_empty_monitor_data():
    data = MonitorData()
    assert not data.is_active
    assert data.values == {}
