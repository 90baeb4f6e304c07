"""ANT BMS protocol.

Request::

    7E [A1 func addr_lo addr_hi value] [crc_lo crc_hi] AA 55

Response::

    7E A1 [code] .. .. [len] [data...] [crc_lo crc_hi] AA 55

The CRC is CRC-16/MODBUS over everything between the 7E and the CRC.
Status (0x11) is polled and decoded; other responses are ignored.
"""

from __future__ import annotations

import logging

from ..models.bms import ANT_UUIDS, BmsData, BmsType
from ..utils.bytes import i16_le, u8, u16_le, u32_le
from ..utils.crc import crc16_modbus
from .base import BmsProtocol

logger = logging.getLogger(__name__)

START = b"\x7E\xA1"
TRAILER = b"\xAA\x55"
HEADER_LENGTH = 6
MIN_FRAME = 10  # header + crc + trailer

FUNC_STATUS = 0x01
RESP_STATUS = 0x11

TEMP_ABSENT = 65496
MIN_STATUS_FRAME = 50


def build_command(func: int, address: int, value: int) -> bytes:
    payload = bytes([0xA1, func, address & 0xFF, (address >> 8) & 0xFF, value & 0xFF])
    crc = crc16_modbus(payload)
    return b"\x7E" + payload + crc.to_bytes(2, "little") + TRAILER


STATUS_COMMAND = build_command(FUNC_STATUS, 0x0000, 0xBE)


class AntBmsProtocol(BmsProtocol):
    bms_type = BmsType.ANT_BMS
    uuids = ANT_UUIDS
    poll_interval_ms = 500

    def handshake_commands(self) -> list[bytes]:
        return [STATUS_COMMAND]

    def poll_commands(self) -> list[bytes]:
        return [STATUS_COMMAND]

    def _parse_buffer(self) -> None:
        buf = self._buffer
        while True:
            idx = buf.find(START)
            if idx < 0:
                if len(buf) > len(START):
                    buf.trim(len(buf) - len(START))
                return
            if idx:
                buf.trim(idx)
            if len(buf) < MIN_FRAME:
                return

            frame_len = HEADER_LENGTH + buf[5] + 4
            if len(buf) < frame_len:
                return

            frame = buf.peek(frame_len)
            if frame[-2:] != TRAILER:
                logger.debug("ANT frame bad trailer, resyncing")
                buf.trim(2)
                continue
            if u16_le(frame, frame_len - 4) != crc16_modbus(frame, 1, frame_len - 4):
                logger.debug("ANT frame CRC mismatch, resyncing")
                buf.trim(2)
                continue

            buf.trim(frame_len)
            if frame[2] == RESP_STATUS:
                self._parse_status(frame)

    def _parse_status(self, frame: bytes) -> None:
        n = len(frame)
        if n < MIN_STATUS_FRAME:
            return

        num_temp = u8(frame, 8)
        num_cells = u8(frame, 9)

        cells = []
        for i in range(num_cells):
            off = 34 + i * 2
            if off + 1 >= n:
                break
            mv = u16_le(frame, off)
            if 1 <= mv <= 5000:
                cells.append(mv / 1000)

        pos = 34 + num_cells * 2

        # Sensor temperatures are whole degrees C.
        temps = []
        for _ in range(num_temp):
            if pos + 1 >= n:
                break
            raw = u16_le(frame, pos)
            pos += 2
            if raw != TEMP_ABSENT:
                temps.append(float(raw))

        # MOS temperature
        if pos + 1 < n:
            raw = u16_le(frame, pos)
            pos += 2
            if raw != TEMP_ABSENT:
                temps.append(float(raw))

        pos += 2  # balancer temperature

        voltage = u16_le(frame, pos) * 0.01 if pos + 1 < n else 0.0
        pos += 2
        current = i16_le(frame, pos) * 0.1 if pos + 1 < n else 0.0
        pos += 2
        soc = float(u16_le(frame, pos)) if pos + 1 < n else 0.0
        pos += 2
        pos += 2  # SOH

        discharge_enabled = pos < n and u8(frame, pos) == 1
        pos += 1
        charge_enabled = pos < n and u8(frame, pos) == 1
        pos += 1
        pos += 2  # balancer state, reserved

        capacity = u32_le(frame, pos) * 0.000001 if pos + 3 < n else 0.0
        pos += 4
        charge = u32_le(frame, pos) * 0.000001 if pos + 3 < n else 0.0

        self._last_data = BmsData(
            voltage=voltage,
            current=current,
            power=voltage * current,
            soc=soc,
            charge=charge,
            capacity=capacity,
            cell_voltages=tuple(cells),
            temperatures=tuple(temps),
            charge_enabled=charge_enabled,
            discharge_enabled=discharge_enabled,
            is_connected=True,
        )
