"""Tests for the controller session against the simulated controller."""

from __future__ import annotations

import time

from kelly_ets_mcp.config import SessionConfig
from kelly_ets_mcp.models.controller import ControllerModel
from kelly_ets_mcp.protocol.commands import EtsCommand
from kelly_ets_mcp.protocol.errors import TransportError, UnsupportedController
from kelly_ets_mcp.session import ConnectionStatus, ControllerSession
from kelly_ets_mcp.transport import TransportType
from kelly_ets_mcp.transport.mock import MockTransport, default_flash


def _session(transport: MockTransport | None = None, **overrides):
    transport = transport or MockTransport(seed=7)
    config = SessionConfig(
        settle_delay_s=0,
        monitor_interval_s=0.001,
        auto_monitor=False,
        **overrides,
    )
    return ControllerSession(config, transport_factory=lambda _t: transport), transport


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_connect_identifies_controller():
    session, transport = _session()
    result = session.connect("sim", TransportType.MOCK)
    assert result.ok
    state = session.state
    assert state.status == ConnectionStatus.CONNECTED
    assert state.module_name == "KLS7218S"
    assert state.software_version == 265
    assert state.model == ControllerModel.KBLS_0109
    assert session.calibration.data_value == transport.flash
    # FLASH_OPEN then 32 reads
    assert transport.sent[0][0] == 0xF1
    assert len(transport.sent) == 33


def test_connect_unsupported_controller():
    flash = default_flash()
    flash[0:8] = b"KEB72601"
    session, transport = _session(MockTransport(flash=flash))
    result = session.connect("sim", TransportType.MOCK)
    assert isinstance(result.error, UnsupportedController)
    assert session.state.status == ConnectionStatus.ERROR
    assert session.transport is None
    assert not transport.connected


def test_connect_open_failure_message():
    transport = MockTransport()
    transport.silence(5)
    session, _ = _session(transport)
    result = session.connect("sim", TransportType.MOCK)
    assert not result.ok
    assert session.state.message.startswith("Failed to open flash")
    assert session.transport is None
    assert not transport.connected


def test_connect_transport_error():
    transport = MockTransport()
    transport.break_link()
    session, _ = _session(transport)
    result = session.connect("sim", TransportType.MOCK)
    assert isinstance(result.error, TransportError)
    assert not session.state.is_connected


def test_disconnect_resets_state():
    session, transport = _session()
    session.connect("sim", TransportType.MOCK)
    session.disconnect()
    assert session.state.status == ConnectionStatus.DISCONNECTED
    assert session.calibration is None
    assert not transport.connected


def test_operations_require_connection():
    session, _ = _session()
    assert isinstance(session.read_calibration().error, TransportError)
    assert isinstance(session.read_phase_current_zero().error, TransportError)
    assert not session.start_monitor()


def test_write_calibration_round_trip():
    session, transport = _session()
    session.connect("sim", TransportType.MOCK)
    cal = session.calibration.copy()
    assert cal.update_parameter(cal.find("TPS Dead Low"), "22")

    assert session.write_calibration(cal).ok
    assert transport.flash[96] == 22
    assert transport.sent[-1] == bytes([0xF4, 0x00, 0xF4])

    reread = session.read_calibration().unwrap()
    assert reread.read(reread.find("TPS Dead Low")) == "22"


def test_write_without_calibration():
    session, _ = _session()
    assert isinstance(session.write_calibration().error, ValueError)


def test_phase_current_zero():
    session, _ = _session()
    session.connect("sim", TransportType.MOCK)
    assert session.read_phase_current_zero().value == [128] * 10


def test_monitor_updates_data():
    session, transport = _session()
    transport.error_status = 0x0004
    session.connect("sim", TransportType.MOCK)
    assert session.start_monitor()
    try:
        assert _wait_for(lambda: session.monitor_data.values)
        data = session.monitor_data
        assert data.is_active
        assert data.values["B+ Volt"] == "48"
        assert data.error_messages == ["Low Volt"]
    finally:
        session.stop_monitor()
    assert not session.monitoring
    assert not session.monitor_data.is_active


def test_monitor_reports_communication_loss():
    session, transport = _session(max_consecutive_failures=3)
    session.connect("sim", TransportType.MOCK)
    transport.silence(1000)
    session.start_monitor()
    try:
        assert _wait_for(lambda: session.monitor_data.communication_error)
        assert session.monitor_data.communication_error.startswith("Communication lost")
    finally:
        session.stop_monitor()


def test_calibration_read_pauses_and_resumes_monitor():
    session, transport = _session()
    session.connect("sim", TransportType.MOCK)
    session.start_monitor()
    try:
        assert session.read_calibration().ok
        assert session.monitoring
    finally:
        session.stop_monitor()


def test_calibration_read_leaves_stopped_monitor_stopped():
    session, _ = _session()
    session.connect("sim", TransportType.MOCK)
    assert session.read_calibration().ok
    assert not session.monitoring


def test_auto_monitor_on_connect():
    transport = MockTransport(seed=3)
    session = ControllerSession(
        SessionConfig(settle_delay_s=0, monitor_interval_s=0.001),
        transport_factory=lambda _t: transport,
    )
    session.connect("sim", TransportType.MOCK)
    try:
        assert session.monitoring
    finally:
        session.disconnect()
    assert not session.monitoring


class _UnreadableFlash(MockTransport):
    """Answers FLASH_OPEN but never a block read."""

    def _respond(self, tx: bytes) -> bytes:
        if tx[0] == EtsCommand.FLASH_READ:
            return b""
        return super()._respond(tx)


def test_failed_flash_read_closes_link():
    session, transport = _session(_UnreadableFlash())
    result = session.connect("sim", TransportType.MOCK)
    assert not result.ok
    assert session.state.message.startswith("Failed to read flash")
    assert session.transport is None
    assert not transport.connected


def test_read_firmware_version():
    session, _ = _session()
    assert isinstance(session.read_firmware_version().error, TransportError)
    session.connect("sim", TransportType.MOCK)
    assert session.read_firmware_version().value == 265
