"""JBD / Xiaoxiang BMS protocol.

Request, 7 bytes::

    DD A5 [cmd] 00 [csum_hi] [csum_lo] 77     csum = 0xFFFF - (cmd - 1)

Response::

    DD [cmd] [status] [len] [data...] [csum_hi] [csum_lo] 77

0x03 carries pack telemetry and 0x04 the cell voltages. A snapshot is
published once 0x03 has been seen, merged with the latest cell list.
"""

from __future__ import annotations

import logging

from ..models.bms import JBD_UUIDS, BmsData, BmsType
from ..utils.bytes import i16_be, u16_be
from .base import BmsProtocol

logger = logging.getLogger(__name__)

START = 0xDD
END = 0x77
OVERHEAD = 7  # DD, cmd, status, len, csum(2), 77

CMD_BASIC_INFO = 0x03
CMD_CELL_INFO = 0x04

KELVIN_X10 = 2731


def build_command(cmd: int) -> bytes:
    csum = 0xFFFF - (cmd - 1)
    return bytes([0xDD, 0xA5, cmd & 0xFF, 0x00, (csum >> 8) & 0xFF, csum & 0xFF, END])


class JbdBmsProtocol(BmsProtocol):
    bms_type = BmsType.JBD_BMS
    uuids = JBD_UUIDS
    poll_interval_ms = 500

    def __init__(self) -> None:
        super().__init__()
        self._clear_partial()

    def _clear_partial(self) -> None:
        self._main: dict | None = None
        self._cells: tuple[float, ...] = ()

    def handshake_commands(self) -> list[bytes]:
        return []

    def poll_commands(self) -> list[bytes]:
        return [build_command(CMD_BASIC_INFO), build_command(CMD_CELL_INFO)]

    def reset(self) -> None:
        super().reset()
        self._clear_partial()

    def _parse_buffer(self) -> None:
        buf = self._buffer
        while True:
            idx = buf.find(bytes([START]))
            if idx < 0:
                buf.reset()
                return
            if idx:
                buf.trim(idx)
            if len(buf) < 4:
                return

            frame_len = OVERHEAD + buf[3]
            if len(buf) < frame_len:
                return

            frame = buf.peek(frame_len)
            if frame[-1] != END:
                logger.debug("JBD frame missing trailer, resyncing")
                buf.trim(1)
                continue

            buf.trim(frame_len)
            self._dispatch(frame[1], frame)

    def _dispatch(self, cmd: int, frame: bytes) -> None:
        if cmd == CMD_BASIC_INFO:
            self._parse_basic_info(frame)
        elif cmd == CMD_CELL_INFO:
            self._parse_cell_info(frame)

    def _parse_basic_info(self, frame: bytes) -> None:
        if len(frame) < 27:
            return
        d = 4
        mos = frame[d + 20]
        num_temp = frame[d + 22]

        temps = []
        for i in range(num_temp):
            off = d + 23 + i * 2
            if off + 1 >= len(frame):
                break
            temps.append((u16_be(frame, off) - KELVIN_X10) / 10)

        self._main = {
            "voltage": u16_be(frame, d) / 100,
            # positive = discharge
            "current": -(i16_be(frame, d + 2) / 100),
            "charge": u16_be(frame, d + 4) / 100,
            "capacity": u16_be(frame, d + 6) / 100,
            "num_cycles": u16_be(frame, d + 8),
            "soc": float(frame[d + 19]),
            "charge_enabled": bool(mos & 0x01),
            "discharge_enabled": bool(mos & 0x02),
            "temperatures": tuple(temps),
        }
        self._publish()

    def _parse_cell_info(self, frame: bytes) -> None:
        cells = []
        for i in range(frame[3] // 2):
            off = 4 + i * 2
            if off + 1 >= len(frame):
                break
            cells.append(u16_be(frame, off) / 1000)
        self._cells = tuple(cells)
        self._publish()

    def _publish(self) -> None:
        if self._main is None:
            return
        main = self._main
        self._last_data = BmsData(
            power=main["voltage"] * main["current"],
            cell_voltages=self._cells,
            is_connected=True,
            **main,
        )
