"""JK BMS (JK02) protocol.

Command frame, 20 bytes::

    AA 55 90 EB [addr] [len] [value, zero padded to 13] [sum8 of bytes 0-18]

Responses are 300-byte records starting ``55 AA EB 90`` with the type at
byte 4 (0x01 settings, 0x02 cell data, 0x03 device info) and a sum8 of
bytes 0-298 at byte 299. Some firmware pads records to 320 bytes; the
padding is skipped by the next header scan. After the 0x96 query the BMS
streams cell data on its own, so there is nothing to poll.
"""

from __future__ import annotations

import logging

from ..models.bms import JK_UUIDS, BmsData, BmsType
from ..utils.bytes import i16_le, i32_le, u8, u16_le, u32_le
from ..utils.crc import sum8
from .base import BmsProtocol

logger = logging.getLogger(__name__)

HEADER = b"\x55\xAA\xEB\x90"
FRAME_LENGTH = 300
COMMAND_LENGTH = 20

CMD_DEVICE_INFO = 0x97
CMD_CELL_INFO = 0x96

TYPE_SETTINGS = 0x01
TYPE_CELL_DATA = 0x02
TYPE_DEVICE_INFO = 0x03

TEMP_ABSENT = -2000


def build_command(address: int, value: bytes = b"") -> bytes:
    frame = bytearray(COMMAND_LENGTH)
    frame[0:4] = b"\xAA\x55\x90\xEB"
    frame[4] = address & 0xFF
    frame[5] = len(value)
    frame[6 : 6 + len(value)] = value
    frame[19] = sum8(frame, 0, 19)
    return bytes(frame)


class JkBmsProtocol(BmsProtocol):
    bms_type = BmsType.JK_BMS
    uuids = JK_UUIDS
    poll_interval_ms = 0

    def __init__(self, max_cells: int = 24, fw_offset: int = 0) -> None:
        super().__init__()
        self._max_cells = max_cells
        self._default_fw_offset = fw_offset
        self._num_cells = max_cells
        self._fw_offset = fw_offset  # 32 on 32-cell firmware
        self._charge_switch = False
        self._discharge_switch = False

    def handshake_commands(self) -> list[bytes]:
        return [build_command(CMD_DEVICE_INFO), build_command(CMD_CELL_INFO)]

    def poll_commands(self) -> list[bytes]:
        return []

    def reset(self) -> None:
        super().reset()
        self._num_cells = self._max_cells
        self._fw_offset = self._default_fw_offset

    def _parse_buffer(self) -> None:
        buf = self._buffer
        while True:
            idx = buf.find(HEADER)
            if idx < 0:
                # Keep a possibly split header.
                if len(buf) > len(HEADER):
                    buf.trim(len(buf) - len(HEADER))
                return
            if idx:
                buf.trim(idx)
            if len(buf) < FRAME_LENGTH:
                return

            frame = buf.peek(FRAME_LENGTH)
            if sum8(frame, 0, FRAME_LENGTH - 1) != frame[FRAME_LENGTH - 1]:
                logger.debug("JK frame checksum mismatch, resyncing")
                buf.trim(len(HEADER))
                continue

            self._dispatch(frame[4], frame)
            buf.trim(FRAME_LENGTH)

    def _dispatch(self, frame_type: int, frame: bytes) -> None:
        if frame_type == TYPE_SETTINGS:
            self._parse_settings(frame)
        elif frame_type == TYPE_CELL_DATA:
            self._parse_cell_data(frame)

    def _parse_settings(self, frame: bytes) -> None:
        num_cells = u8(frame, 114)
        if 1 <= num_cells <= 32:
            self._num_cells = num_cells
        self._charge_switch = u8(frame, 118) != 0
        self._discharge_switch = u8(frame, 122) != 0

    def _parse_cell_data(self, frame: bytes) -> None:
        o = self._fw_offset
        if len(frame) < 170 + o:
            return

        cells = []
        for i in range(self._num_cells):
            offset = 6 + i * 2
            if offset + 1 >= len(frame):
                break
            mv = u16_le(frame, offset)
            if 1 <= mv <= 5000:
                cells.append(mv / 1000)

        voltage = u32_le(frame, 118 + o) * 0.001
        current = -(i32_le(frame, 126 + o) * 0.001)

        temps = []
        for offset in (130 + o, 132 + o):
            raw = i16_le(frame, offset)
            if raw != TEMP_ABSENT:
                temps.append(raw / 10)

        self._last_data = BmsData(
            voltage=voltage,
            current=current,
            power=voltage * current,
            soc=float(u8(frame, 141 + o)),
            charge=u32_le(frame, 142 + o) * 0.001,
            capacity=u32_le(frame, 146 + o) * 0.001,
            num_cycles=u32_le(frame, 150 + o),
            cell_voltages=tuple(cells),
            temperatures=tuple(temps),
            charge_enabled=self._charge_switch,
            discharge_enabled=self._discharge_switch,
            is_connected=True,
        )
