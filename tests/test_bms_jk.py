"""Tests for the JK BMS protocol decoder."""

import pytest

from kelly_ets_mcp.bms.jk import (
    FRAME_LENGTH,
    HEADER,
    TYPE_CELL_DATA,
    TYPE_SETTINGS,
    JkBmsProtocol,
    build_command,
)
from kelly_ets_mcp.utils.crc import sum8


def _frame(frame_type: int, fields: dict[int, bytes]) -> bytes:
    frame = bytearray(FRAME_LENGTH)
    frame[0:4] = HEADER
    frame[4] = frame_type
    for offset, raw in fields.items():
        frame[offset : offset + len(raw)] = raw
    frame[-1] = sum8(frame, 0, FRAME_LENGTH - 1)
    return bytes(frame)


def _settings(num_cells: int = 4) -> bytes:
    return _frame(TYPE_SETTINGS, {114: bytes([num_cells]), 118: b"\x01", 122: b"\x01"})


def _cells() -> bytes:
    fields = {6 + i * 2: mv.to_bytes(2, "little") for i, mv in enumerate((3300, 3310, 3290, 3305))}
    fields.update({
        118: (13205).to_bytes(4, "little"),
        126: (-2500).to_bytes(4, "little", signed=True),
        130: (215).to_bytes(2, "little", signed=True),
        132: (-2000).to_bytes(2, "little", signed=True),
        141: bytes([87]),
        142: (87000).to_bytes(4, "little"),
        146: (100000).to_bytes(4, "little"),
        150: (42).to_bytes(4, "little"),
    })
    return _frame(TYPE_CELL_DATA, fields)


def test_build_command():
    cmd = build_command(0x96)
    assert len(cmd) == 20
    assert cmd[:6] == bytes([0xAA, 0x55, 0x90, 0xEB, 0x96, 0x00])
    assert cmd[19] == 0x10


def test_streaming_protocol_has_no_poll():
    proto = JkBmsProtocol()
    assert proto.poll_commands() == []
    assert [c[4] for c in proto.handshake_commands()] == [0x97, 0x96]


def test_cell_data_decoded():
    proto = JkBmsProtocol()
    proto.on_notification(_settings() + _cells())
    data = proto.latest_data()
    assert data.cell_voltages == (3.3, 3.31, 3.29, 3.305)
    assert data.voltage == pytest.approx(13.205)
    assert data.current == pytest.approx(2.5)
    assert data.soc == 87
    assert data.charge == pytest.approx(87.0)
    assert data.capacity == pytest.approx(100.0)
    assert data.num_cycles == 42
    assert data.temperatures == (21.5,)
    assert data.charge_enabled and data.discharge_enabled
    assert proto.buffered == 0


def test_fragmentation_does_not_change_result():
    stream = _settings() + _cells()
    whole = JkBmsProtocol()
    whole.on_notification(stream)

    chunked = JkBmsProtocol()
    for i in range(0, len(stream), 20):
        chunked.on_notification(stream[i : i + 20])

    assert chunked.latest_data() == whole.latest_data()


def test_leading_garbage_skipped():
    proto = JkBmsProtocol()
    proto.on_notification(b"\x00\x01\x02" + _settings() + _cells())
    assert len(proto.latest_data().cell_voltages) == 4


def test_bad_checksum_frame_ignored():
    bad = bytearray(_cells())
    bad[-1] ^= 0xFF
    proto = JkBmsProtocol()
    proto.on_notification(_settings() + bytes(bad))
    assert proto.latest_data() is None

    proto.on_notification(_cells())
    assert proto.latest_data() is not None


def test_no_data_before_cell_frame():
    proto = JkBmsProtocol()
    proto.on_notification(_settings())
    assert proto.latest_data() is None


def test_reset_clears_snapshot():
    proto = JkBmsProtocol()
    proto.on_notification(_settings() + _cells())
    proto.reset()
    assert proto.latest_data() is None
    assert proto.buffered == 0


@pytest.mark.parametrize("split", [1, 3, 4, 5, 150, 299])
def test_two_chunk_split(split):
    frame = _cells()
    proto = JkBmsProtocol(max_cells=4)
    proto.on_notification(frame[:split])
    proto.on_notification(frame[split:])

    reference = JkBmsProtocol(max_cells=4)
    reference.on_notification(frame)
    assert proto.latest_data() == reference.latest_data()
    assert proto.latest_data() is not None
