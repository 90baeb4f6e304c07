"""Tests for the Daly BMS protocol decoder."""

import pytest

from kelly_ets_mcp.bms.daly import DalyBmsProtocol, build_command
from kelly_ets_mcp.utils.crc import sum8


def _response(cmd: int, data: bytes) -> bytes:
    frame = bytes([0xA5, 0x01, cmd, 0x08]) + data.ljust(8, b"\x00")
    return frame + bytes([sum8(frame)])


def _soc() -> bytes:
    return _response(
        0x90,
        (530).to_bytes(2, "big") + bytes(2)
        + (30025).to_bytes(2, "big") + (876).to_bytes(2, "big"),
    )


def _mos() -> bytes:
    return _response(0x93, bytes([0x00, 0x01, 0x01, 0x07]) + (100000).to_bytes(4, "big"))


def _cells() -> bytes:
    first = bytes([1]) + b"".join(mv.to_bytes(2, "big") for mv in (3310, 3312, 3308))
    second = bytes([2]) + (3311).to_bytes(2, "big")
    return _response(0x95, first) + _response(0x95, second)


def _temps() -> bytes:
    return _response(0x96, bytes([1, 65, 63]))


def test_build_command():
    cmd = build_command(0x90)
    assert len(cmd) == 13
    assert cmd[:4] == bytes([0xA5, 0x80, 0x90, 0x08])
    assert cmd[12] == (0xA5 + 0x80 + 0x90 + 0x08) & 0xFF


def test_poll_commands():
    assert [c[2] for c in DalyBmsProtocol().poll_commands()] == [0x90, 0x93, 0x95, 0x96]


def test_nothing_published_before_soc():
    proto = DalyBmsProtocol()
    proto.on_notification(_mos() + _cells())
    assert proto.latest_data() is None


def test_full_cycle():
    proto = DalyBmsProtocol()
    proto.on_notification(_soc() + _mos() + _cells() + _temps())
    data = proto.latest_data()
    assert data.voltage == pytest.approx(53.0)
    assert data.current == pytest.approx(2.5)
    assert data.soc == pytest.approx(87.6)
    assert data.charge_enabled and data.discharge_enabled
    assert data.num_cycles == 7
    assert data.capacity == pytest.approx(100.0)
    assert data.cell_voltages == (3.31, 3.312, 3.308, 3.311)
    assert data.temperatures == (25.0, 23.0)


def test_cell_list_restarts_on_first_frame():
    proto = DalyBmsProtocol()
    proto.on_notification(_soc() + _cells() + _cells())
    assert len(proto.latest_data().cell_voltages) == 4


def test_status_sets_counts_only():
    proto = DalyBmsProtocol()
    proto.on_notification(_response(0x94, bytes([16, 4])))
    assert proto.num_cells == 16
    assert proto.num_temperatures == 4
    assert proto.latest_data() is None


def test_checksum_mismatch_resyncs():
    bad = bytearray(_soc())
    bad[12] ^= 0xFF
    proto = DalyBmsProtocol()
    proto.on_notification(bytes(bad) + _soc())
    assert proto.latest_data().voltage == pytest.approx(53.0)


def test_fragmented_stream():
    stream = _soc() + _mos() + _cells()
    proto = DalyBmsProtocol()
    for i in range(0, len(stream), 5):
        proto.on_notification(stream[i : i + 5])
    assert len(proto.latest_data().cell_voltages) == 4
    assert proto.buffered == 0
