"""Simulated KLS7218S controller (firmware 265) for offline use and tests.

Answers ETS requests from an in-memory 512-byte flash image. Monitor
blocks carry slowly varying live values. ``inject_faults`` makes the next
N responses corrupt, and ``silence`` makes them disappear, which lets the
retry paths run without hardware.
"""

from __future__ import annotations

import logging
import random
import time

from ..protocol.commands import DATA_BUFFER_SIZE, EtsCommand, packet_address
from ..protocol.errors import TransportError
from ..utils.crc import sum8
from .base import Transport, TransportState, TransportType

logger = logging.getLogger(__name__)

MODULE_NAME = "KLS7218S"
FIRMWARE_VERSION = 265


def default_flash() -> bytearray:
    """Factory image of the simulated controller."""
    flash = bytearray(DATA_BUFFER_SIZE)
    flash[0:8] = MODULE_NAME.encode("ascii")
    flash[8:12] = b"TEST"  # user name
    flash[12:16] = b"\x01\x02\x03\x04"  # serial number
    flash[16:18] = FIRMWARE_VERSION.to_bytes(2, "big")
    flash[20] = 0b00000101  # Startup H-Pedel, NTL H-Pedel
    flash[21] = 0b00010001  # Foot Switch, Cruise
    flash[23:25] = (48).to_bytes(2, "big")  # Controller Volt
    flash[25:27] = (36).to_bytes(2, "big")  # Low Volt
    flash[27:29] = (62).to_bytes(2, "big")  # Over Volt
    flash[37] = 80  # Motor Current%
    flash[38] = 70  # Batt Current%
    flash[56] = 0x55  # Identify Angle, disabled
    flash[92] = 5  # TPS Low
    flash[93] = 95  # TPS High
    flash[95] = 1  # TPS Type, 0-5V
    flash[96] = 10  # TPS Dead Low
    flash[97] = 190  # TPS Dead High
    flash[100] = 1  # Brake Type, 0-5V
    flash[101] = 10  # Brake Dead Low
    flash[102] = 90  # Brake Dead High
    flash[105:107] = (500).to_bytes(2, "big")  # Max Output Fre, Hz
    flash[107:109] = (6000).to_bytes(2, "big")  # Max Speed, RPM
    flash[109] = 100  # Max Forw Speed%
    flash[110] = 50  # Max Rev Speed%
    flash[127] = 20  # PWM, kHz
    flash[268] = 10  # Motor Poles
    flash[269] = 2  # Speed Sensor Type, hall
    flash[318] = 1  # Motor Temp Sensor
    flash[319] = 130  # High Temp Cut
    flash[320] = 110  # High Temp Resume
    return flash


def build_response(command: int, data: bytes = b"") -> bytes:
    body = bytes([command & 0xFF, len(data)]) + bytes(data)
    return body + bytes([sum8(body)])


class MockTransport(Transport):
    transport_type = TransportType.MOCK

    def __init__(
        self,
        flash: bytes | None = None,
        latency_s: float = 0.0,
        seed: int | None = None,
    ) -> None:
        super().__init__()
        self.flash = bytearray(flash) if flash is not None else default_flash()
        self.latency_s = latency_s
        self.error_status = 0
        self.sent: list[bytes] = []
        self.drain_count = 0
        self._last_tx = b""
        self._tick = 0
        self._rng = random.Random(seed)
        self._corrupt = 0
        self._silent = 0
        self._fail_link = False

    def inject_faults(self, count: int) -> None:
        """Corrupt the checksum of the next ``count`` responses."""
        self._corrupt = count

    def silence(self, count: int) -> None:
        """Return nothing for the next ``count`` receives."""
        self._silent = count

    def break_link(self, broken: bool = True) -> None:
        """Make every send raise :class:`TransportError` until restored."""
        self._fail_link = broken

    def connect(self, address: str) -> None:
        self._state = TransportState.CONNECTING
        if self._fail_link:
            self._state = TransportState.ERROR
            raise TransportError(f"Simulated controller unreachable at {address}")
        self._state = TransportState.CONNECTED
        logger.info("Simulated controller %s attached", MODULE_NAME)

    def disconnect(self) -> None:
        self._state = TransportState.DISCONNECTED

    def send(self, data: bytes) -> None:
        if not self.connected:
            raise TransportError("Not connected")
        if self._fail_link:
            raise TransportError("Simulated link failure")
        self._last_tx = bytes(data)
        self.sent.append(self._last_tx)

    def drain(self) -> None:
        self.drain_count += 1

    def receive(self, expected_length: int, timeout_ms: int) -> bytes:
        if not self.connected:
            raise TransportError("Not connected")
        if self.latency_s:
            time.sleep(self.latency_s)
        if len(self._last_tx) < 3:
            return b""
        if self._silent:
            self._silent -= 1
            return b""

        response = self._respond(self._last_tx)[:expected_length]
        if self._corrupt:
            self._corrupt -= 1
            response = response[:-1] + bytes([(response[-1] + 1) & 0xFF])
        return response

    def _respond(self, tx: bytes) -> bytes:
        command = tx[0]
        if command == EtsCommand.FLASH_READ:
            address, length = packet_address(tx)
            length = min(length, 16)
            chunk = bytes(self.flash[address : address + length])
            return build_response(command, chunk.ljust(length, b"\x00"))
        if command == EtsCommand.FLASH_WRITE:
            address, length = packet_address(tx)
            payload = tx[5 : 5 + length]
            if address < DATA_BUFFER_SIZE:
                end = min(address + len(payload), DATA_BUFFER_SIZE)
                self.flash[address:end] = payload[: end - address]
            return build_response(command)
        if command == EtsCommand.CODE_VERSION:
            return build_response(command, FIRMWARE_VERSION.to_bytes(2, "big"))
        if command in (EtsCommand.USER_MONITOR1, EtsCommand.USER_MONITOR2, EtsCommand.USER_MONITOR3):
            return build_response(command, self._monitor_block(command - EtsCommand.USER_MONITOR1))
        if command == EtsCommand.GET_PHASE_I_AD:
            return build_response(command, bytes([128] * 10))
        return build_response(command)

    def _jitter(self, center: int, spread: int, lo: int, hi: int) -> int:
        return max(lo, min(hi, center + self._rng.randint(-spread, spread)))

    def _monitor_block(self, index: int) -> bytes:
        self._tick += 1
        block = bytearray(16)
        if index == 0:
            block[0] = self._jitter(80, 5, 0, 255)  # TPS
            block[3] = 1  # Foot Switch
            block[4] = 1  # Forward Switch
            block[6] = (self._tick % 6) // 3  # Hall A
            block[7] = ((self._tick + 2) % 6) // 3  # Hall B
            block[8] = ((self._tick + 4) % 6) // 3  # Hall C
            block[9] = 48  # B+ Volt
            block[10] = self._jitter(35, 2, 0, 150)  # Motor Temp
            block[11] = self._jitter(40, 1, 0, 150)  # Controller Temp
        elif index == 1:
            block[0:2] = (self.error_status & 0xFFFF).to_bytes(2, "big")
            block[2:4] = self._jitter(1500, 50, 0, 15000).to_bytes(2, "big")
            block[4:6] = self._jitter(120, 10, 0, 800).to_bytes(2, "big")
        return bytes(block)
