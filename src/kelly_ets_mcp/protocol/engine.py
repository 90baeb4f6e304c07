"""Request/response orchestration for the ETS protocol.

The engine owns no connection. It is handed two callables:

- ``send_and_receive(tx) -> rx``: write one packet, return whatever came back
- ``drain()``: discard bytes buffered by an earlier, possibly abandoned
  exchange

``drain()`` runs before every attempt. Responses are not tagged, so a late
reply to one command would otherwise be read as the reply to the next.

Every operation returns a :class:`Result`; protocol and transport failures
never escape as exceptions.
"""

from __future__ import annotations

import logging
from typing import Callable

from .commands import (
    DATA_BUFFER_SIZE,
    READ_BLOCK_SIZE,
    EtsCommand,
    build_command,
    build_flash_read_packets,
    build_flash_write_packets,
)
from .errors import KellyError, MalformedPacket, ProtocolError, ReceiveTimeout, TransportError
from .framing import EtsPacket, parse_rx_response
from .parser import (
    MONITOR_BLOCK_SIZE,
    PHASE_CURRENT_CHANNELS,
    copy_flash_block,
    copy_monitor_block,
    VersionResponse,
    parse_phase_current,
    parse_version,
)
from .result import Result

logger = logging.getLogger(__name__)

# Attempts per exchange
VERSION_ATTEMPTS = 2
OPEN_ATTEMPTS = 2
READ_ATTEMPTS = 2
WRITE_ATTEMPTS = 3
BURN_ATTEMPTS = 30  # flash commit can take ~9 s on-device
PHASE_CURRENT_ATTEMPTS = 2

MONITOR_COMMANDS = (
    EtsCommand.USER_MONITOR1,
    EtsCommand.USER_MONITOR2,
    EtsCommand.USER_MONITOR3,
)
MONITOR_BUFFER_SIZE = MONITOR_BLOCK_SIZE * len(MONITOR_COMMANDS)  # 48


def _noop() -> None:
    return None


class EtsProtocol:
    """High-level ETS operations over a caller-supplied exchange function.

    Usage::

        proto = EtsProtocol(send_and_receive, transport.drain)
        proto.open_flash().unwrap()
        image = proto.read_flash().unwrap()
    """

    def __init__(
        self,
        send_and_receive: Callable[[bytes], bytes],
        drain: Callable[[], None] | None = None,
    ) -> None:
        self._send_and_receive = send_and_receive
        self._drain = drain or _noop

    def _exchange(self, tx: bytes, expected: int, min_length: int = 0) -> Result[EtsPacket]:
        """One drain/send/receive/parse cycle.

        Raises:
            TransportError: Propagated from the link.
        """
        self._drain()
        rx = self._send_and_receive(tx)
        if not rx:
            return Result.failure(
                ReceiveTimeout(f"No response to command 0x{expected:02X}")
            )
        result = parse_rx_response(rx, expected)
        if result.ok and result.value.data_length < min_length:
            return Result.failure(
                MalformedPacket(
                    f"Response to 0x{expected:02X} short: "
                    f"{result.value.data_length} of {min_length} bytes"
                )
            )
        return result

    def _send_with_retry(
        self,
        tx: bytes,
        expected: EtsCommand,
        max_attempts: int,
        min_length: int = 0,
    ) -> Result[EtsPacket]:
        """Send a packet and parse the response, retrying protocol failures.

        Returns the first successful packet, or the last failure once all
        attempts are used. Transport errors end the exchange immediately.
        """
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                result = self._exchange(tx, expected.value, min_length)
            except TransportError as e:
                logger.debug("%s transport failure: %s", expected.name, e)
                return Result.failure(e)
            except ProtocolError as e:
                result = Result.failure(e)

            if result.ok:
                return result
            last_error = result.error
            logger.debug(
                "%s attempt %d/%d failed: %s",
                expected.name, attempt, max_attempts, last_error,
            )

        return Result.failure(
            last_error
            or ProtocolError(f"{expected.name} failed after {max_attempts} attempts")
        )

    def read_version(self) -> Result[VersionResponse]:
        """Query the firmware version (CODE_VERSION, 0x11)."""
        result = self._send_with_retry(
            build_command(EtsCommand.CODE_VERSION),
            EtsCommand.CODE_VERSION,
            VERSION_ATTEMPTS,
        )
        return result.map(parse_version)

    def open_flash(self) -> Result[EtsPacket]:
        """Open flash for reading/writing. Must precede read_flash and write_flash."""
        return self._send_with_retry(
            build_command(EtsCommand.FLASH_OPEN),
            EtsCommand.FLASH_OPEN,
            OPEN_ATTEMPTS,
        )

    def read_flash(self) -> Result[bytearray]:
        """Read the full 512-byte calibration image in 32 blocks of 16.

        Aborts on the first block that fails all its attempts.
        """
        data_value = bytearray(DATA_BUFFER_SIZE)
        for i, tx in enumerate(build_flash_read_packets()):
            result = self._send_with_retry(
                tx, EtsCommand.FLASH_READ, READ_ATTEMPTS, min_length=READ_BLOCK_SIZE
            )
            if not result.ok:
                logger.debug("Flash read aborted at block %d", i)
                return Result.failure(result.error)
            copy_flash_block(result.value, i, data_value)
        return Result.success(data_value)

    def write_flash(self, data_value: bytes) -> Result[None]:
        """Write the full image in 40 chunks. Call :meth:`burn_flash` afterwards.

        Aborts on the first chunk that fails all its attempts.
        """
        for i, tx in enumerate(build_flash_write_packets(data_value)):
            result = self._send_with_retry(tx, EtsCommand.FLASH_WRITE, WRITE_ATTEMPTS)
            if not result.ok:
                logger.debug("Flash write aborted at chunk %d", i)
                return Result.failure(result.error)
        return Result.success(None)

    def burn_flash(self) -> Result[EtsPacket]:
        """Commit written data (FLASH_CLOSE, 0xF4)."""
        return self._send_with_retry(
            build_command(EtsCommand.FLASH_CLOSE),
            EtsCommand.FLASH_CLOSE,
            BURN_ATTEMPTS,
        )

    def read_monitor(self) -> Result[bytearray]:
        """Read the three user-monitor blocks into one 48-byte buffer.

        No retries: the polling loop simply tries again next cycle.
        """
        monitor_data = bytearray(MONITOR_BUFFER_SIZE)
        for index, command in enumerate(MONITOR_COMMANDS):
            try:
                result = self._exchange(build_command(command), command.value)
            except KellyError as e:
                return Result.failure(e)
            if not result.ok:
                return Result.failure(result.error)
            copy_monitor_block(result.value, index, monitor_data)
        return Result.success(monitor_data)

    def read_phase_current_ad(self) -> Result[list[int]]:
        """Read the 10 phase-current zero AD values (GET_PHASE_I_AD, 0x35)."""
        result = self._send_with_retry(
            build_command(EtsCommand.GET_PHASE_I_AD),
            EtsCommand.GET_PHASE_I_AD,
            PHASE_CURRENT_ATTEMPTS,
            min_length=PHASE_CURRENT_CHANNELS,
        )
        return result.map(parse_phase_current)
