"""Daly BMS protocol.

Every frame, request or response, is 13 bytes::

    A5 [addr] [cmd] 08 [8 data bytes] [sum8 of bytes 0-11]

Requests use address 0x80. A snapshot is assembled from 0x90 (pack
voltage, current, SOC), 0x93 (MOS state, cycles, capacity), 0x95 (three
cell voltages per frame) and 0x96 (seven temperatures per frame), and is
republished after each of them once 0x90 has arrived.
"""

from __future__ import annotations

import logging

from ..models.bms import DALY_UUIDS, BmsData, BmsType
from ..utils.bytes import u8, u16_be, u32_be
from ..utils.crc import sum8
from .base import BmsProtocol

logger = logging.getLogger(__name__)

START = 0xA5
FRAME_LENGTH = 13
HOST_ADDRESS = 0x80
DATA = 4

CMD_SOC = 0x90
CMD_MOS = 0x93
CMD_STATUS = 0x94
CMD_CELL_VOLTAGES = 0x95
CMD_TEMPERATURES = 0x96

CURRENT_OFFSET = 30000  # 0.1 A
TEMP_OFFSET = 40


def build_command(cmd: int, data: bytes = bytes(8)) -> bytes:
    frame = bytearray(FRAME_LENGTH)
    frame[0] = START
    frame[1] = HOST_ADDRESS
    frame[2] = cmd & 0xFF
    frame[3] = 0x08
    payload = data[:8]
    frame[4 : 4 + len(payload)] = payload
    frame[12] = sum8(frame, 0, 12)
    return bytes(frame)


class DalyBmsProtocol(BmsProtocol):
    bms_type = BmsType.DALY_BMS
    uuids = DALY_UUIDS
    poll_interval_ms = 500

    def __init__(self) -> None:
        super().__init__()
        self._clear_partial()

    def _clear_partial(self) -> None:
        self._voltage = 0.0
        self._current = 0.0
        self._soc = 0.0
        self._num_cells = 0
        self._num_temp = 0
        self._num_cycles = 0
        self._capacity = 0.0
        self._charge_enabled = False
        self._discharge_enabled = False
        self._cells: list[float] = []
        self._temps: list[float] = []
        self._has_basic = False

    def handshake_commands(self) -> list[bytes]:
        return []

    def poll_commands(self) -> list[bytes]:
        return [
            build_command(CMD_SOC),
            build_command(CMD_MOS),
            build_command(CMD_CELL_VOLTAGES),
            build_command(CMD_TEMPERATURES),
        ]

    def reset(self) -> None:
        super().reset()
        self._clear_partial()

    @property
    def num_cells(self) -> int:
        return self._num_cells

    @property
    def num_temperatures(self) -> int:
        return self._num_temp

    def _parse_buffer(self) -> None:
        buf = self._buffer
        while True:
            idx = buf.find(bytes([START]))
            if idx < 0:
                buf.reset()
                return
            if idx:
                buf.trim(idx)
            if len(buf) < FRAME_LENGTH:
                return

            frame = buf.peek(FRAME_LENGTH)
            if sum8(frame, 0, 12) != frame[12]:
                logger.debug("Daly frame checksum mismatch, resyncing")
                buf.trim(1)
                continue

            buf.trim(FRAME_LENGTH)
            self._dispatch(frame[2], frame)

    def _dispatch(self, cmd: int, frame: bytes) -> None:
        d = DATA
        if cmd == CMD_SOC:
            self._voltage = u16_be(frame, d) / 10
            self._current = (u16_be(frame, d + 4) - CURRENT_OFFSET) / 10
            self._soc = u16_be(frame, d + 6) / 10
            self._has_basic = True
        elif cmd == CMD_MOS:
            self._charge_enabled = frame[d + 1] != 0
            self._discharge_enabled = frame[d + 2] != 0
            self._num_cycles = u8(frame, d + 3)
            self._capacity = u32_be(frame, d + 4) / 1000
        elif cmd == CMD_STATUS:
            self._num_cells = u8(frame, d)
            self._num_temp = u8(frame, d + 1)
            return
        elif cmd == CMD_CELL_VOLTAGES:
            # Frame numbers start at 1.
            if u8(frame, d) == 1:
                self._cells.clear()
            for i in range(3):
                mv = u16_be(frame, d + 1 + i * 2)
                if 1 <= mv <= 5000:
                    self._cells.append(mv / 1000)
        elif cmd == CMD_TEMPERATURES:
            if u8(frame, d) == 1:
                self._temps.clear()
            for i in range(7):
                raw = u8(frame, d + 1 + i)
                if raw != 0:
                    self._temps.append(float(raw - TEMP_OFFSET))
        else:
            return
        self._publish()

    def _publish(self) -> None:
        if not self._has_basic:
            return
        self._last_data = BmsData(
            voltage=self._voltage,
            current=self._current,
            power=self._voltage * self._current,
            soc=self._soc,
            capacity=self._capacity,
            num_cycles=self._num_cycles,
            cell_voltages=tuple(self._cells),
            temperatures=tuple(self._temps),
            charge_enabled=self._charge_enabled,
            discharge_enabled=self._discharge_enabled,
            is_connected=True,
        )
