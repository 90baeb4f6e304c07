"""Controller session: connection lifecycle, calibration transfer and live monitoring.

All ETS exchanges go through one lock, so the monitor thread and
calibration transfers never interleave on the wire. Before flash is
touched the monitor thread is stopped and joined, then the session waits
``settle_delay_s`` so late monitor replies can arrive and be drained.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterator

from .config import SessionConfig
from .models.calibration import CalibrationData, module_name_of, software_version_of
from .models.controller import ControllerModel
from .models.monitor import MonitorData
from .protocol.engine import EtsProtocol
from .protocol.errors import TransportError
from .protocol.result import Result
from .transport import Transport, TransportType, create_transport

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    module_name: str = ""
    software_version: int = 0
    model: ControllerModel | None = None
    message: str = ""

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    def to_dict(self) -> dict:
        d = {"status": self.status.value}
        if self.status == ConnectionStatus.CONNECTED:
            d.update(
                module_name=self.module_name,
                software_version=self.software_version,
                model=self.model.value if self.model else None,
            )
        if self.message:
            d["message"] = self.message
        return d


class ControllerSession:
    """One controller connection.

    Usage::

        session = ControllerSession()
        session.connect("/dev/ttyUSB0", TransportType.USB).unwrap()
        cal = session.read_calibration().unwrap()
        cal.update_parameter(cal.find("TPS Dead Low"), "15")
        session.write_calibration(cal).unwrap()
        session.disconnect()
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        transport_factory: Callable[[TransportType], Transport] | None = None,
    ) -> None:
        self._fixed_config = config
        self.config = config or SessionConfig()
        self._transport_factory = transport_factory
        self._transport: Transport | None = None
        self._transport_type: TransportType | None = None
        self._protocol: EtsProtocol | None = None
        self._lock = threading.Lock()
        self._state = ConnectionState()
        self._calibration: CalibrationData | None = None
        self._monitor_data = MonitorData()
        self._monitor_thread: threading.Thread | None = None
        self._monitor_stop = threading.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def calibration(self) -> CalibrationData | None:
        """The last calibration image read or written."""
        return self._calibration

    @property
    def monitor_data(self) -> MonitorData:
        return self._monitor_data

    @property
    def monitoring(self) -> bool:
        return self._monitor_thread is not None and self._monitor_thread.is_alive()

    # -- connection ----------------------------------------------------

    def connect(self, address: str, transport_type: TransportType) -> Result[ConnectionState]:
        """Open the link, read the image header and identify the controller.

        Starts monitoring afterwards when ``auto_monitor`` is set.
        """
        if self._transport is not None:
            self.disconnect()

        self.config = self._fixed_config or SessionConfig.for_transport(transport_type)
        with self._lock:
            result = self._connect_locked(address, transport_type)

        if result.ok:
            logger.info(
                "Connected to %s (firmware %d, %s) on %s",
                result.value.module_name,
                result.value.software_version,
                result.value.model.value,
                address,
            )
            if self.config.auto_monitor:
                self.start_monitor()
        return result

    def _connect_locked(self, address: str, transport_type: TransportType) -> Result[ConnectionState]:
        self._state = ConnectionState(ConnectionStatus.CONNECTING)
        try:
            transport = self._create_transport(transport_type)
            transport.connect(address)
        except TransportError as e:
            return self._fail(e, str(e))

        self._transport = transport
        self._transport_type = transport_type
        timeout_ms = self.config.receive_timeout_ms
        expected = self.config.expected_response_length

        def send_and_receive(tx: bytes) -> bytes:
            transport.send(tx)
            return transport.receive(expected, timeout_ms)

        proto = EtsProtocol(send_and_receive, transport.drain)
        self._protocol = proto

        opened = proto.open_flash()
        if not opened.ok:
            self._release_transport()
            return self._fail(opened.error, f"Failed to open flash: {opened.error}")

        image = proto.read_flash()
        if not image.ok:
            self._release_transport()
            return self._fail(image.error, f"Failed to read flash: {image.error}")

        data = image.value
        module_name = module_name_of(data)
        version = software_version_of(data)
        detected = ControllerModel.detect(module_name, version)
        if not detected.ok:
            self._release_transport()
            return self._fail(detected.error, str(detected.error))

        self._calibration = CalibrationData(detected.value, data)
        self._state = ConnectionState(
            ConnectionStatus.CONNECTED,
            module_name=module_name,
            software_version=version,
            model=detected.value,
        )
        return Result.success(self._state)

    def _create_transport(self, transport_type: TransportType) -> Transport:
        if self._transport_factory is not None:
            return self._transport_factory(transport_type)
        return create_transport(transport_type, baudrate=self.config.baudrate)

    def _release_transport(self) -> None:
        if self._transport is not None:
            self._transport.disconnect()
        self._transport = None
        self._transport_type = None
        self._protocol = None

    def _fail(self, error: Exception, message: str) -> Result:
        logger.warning("Connect failed: %s", message)
        self._state = ConnectionState(ConnectionStatus.ERROR, message=message)
        return Result.failure(error)

    def disconnect(self) -> None:
        self.stop_monitor()
        with self._lock:
            if self._transport is not None:
                self._transport.disconnect()
                logger.info("Disconnected")
            self._transport = None
            self._transport_type = None
            self._protocol = None
            self._calibration = None
            self._state = ConnectionState()

    def _require_connected(self) -> EtsProtocol:
        if self._protocol is None or not self._state.is_connected:
            raise TransportError("Not connected")
        return self._protocol

    # -- calibration ---------------------------------------------------

    @contextmanager
    def _monitor_paused(self) -> Iterator[None]:
        was_running = self.monitoring
        if was_running:
            self.stop_monitor()
            time.sleep(self.config.settle_delay_s)
        try:
            yield
        finally:
            if was_running and self._state.is_connected:
                self.start_monitor()

    def read_calibration(self) -> Result[CalibrationData]:
        """Read the full 512-byte image from the controller."""
        with self._monitor_paused(), self._lock:
            try:
                proto = self._require_connected()
            except TransportError as e:
                return Result.failure(e)

            opened = proto.open_flash()
            if not opened.ok:
                return Result.failure(opened.error)
            image = proto.read_flash()
            if not image.ok:
                return Result.failure(image.error)

            self._calibration = CalibrationData(self._state.model, image.value)
            logger.info("Calibration read complete")
            return Result.success(self._calibration)

    def write_calibration(self, data: CalibrationData | None = None) -> Result[None]:
        """Write an image to the controller and commit it.

        Writes the session's current image when ``data`` is omitted.
        """
        data = data or self._calibration
        if data is None:
            return Result.failure(ValueError("No calibration data to write"))

        with self._monitor_paused(), self._lock:
            try:
                proto = self._require_connected()
            except TransportError as e:
                return Result.failure(e)

            opened = proto.open_flash()
            if not opened.ok:
                return Result.failure(opened.error)
            written = proto.write_flash(data.data_value)
            if not written.ok:
                return Result.failure(written.error)
            burned = proto.burn_flash()
            if not burned.ok:
                return Result.failure(burned.error)

            self._calibration = data
            logger.info("Calibration write complete")
            return Result.success(None)

    def read_firmware_version(self) -> Result[int]:
        """Ask the running firmware for its version (CODE_VERSION)."""
        with self._lock:
            try:
                proto = self._require_connected()
            except TransportError as e:
                return Result.failure(e)
            return proto.read_version().map(lambda response: response.version)

    def read_phase_current_zero(self) -> Result[list[int]]:
        with self._lock:
            try:
                proto = self._require_connected()
            except TransportError as e:
                return Result.failure(e)
            return proto.read_phase_current_ad()

    # -- monitoring ----------------------------------------------------

    def start_monitor(self) -> bool:
        """Start the polling thread. Returns False if not connected."""
        if self.monitoring:
            return True
        if self._protocol is None or not self._state.is_connected:
            return False

        self._monitor_stop.clear()
        self._monitor_data = replace(
            self._monitor_data, is_active=True, communication_error=None
        )
        self._monitor_thread = threading.Thread(
            target=self._monitor_loop, name="kelly-monitor", daemon=True
        )
        self._monitor_thread.start()
        return True

    def stop_monitor(self) -> None:
        """Stop the polling thread and wait for its current exchange to finish."""
        thread = self._monitor_thread
        self._monitor_stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        self._monitor_thread = None
        self._monitor_data = replace(
            self._monitor_data, is_active=False, communication_error=None
        )

    def _monitor_loop(self) -> None:
        failures = 0
        limit = self.config.max_consecutive_failures
        while not self._monitor_stop.is_set():
            with self._lock:
                proto = self._protocol
                if proto is None:
                    break
                result = proto.read_monitor()

            if result.ok:
                failures = 0
                self._monitor_data = MonitorData.from_buffer(result.value)
            else:
                failures += 1
                logger.debug("Monitor poll failed (%d/%d): %s", failures, limit, result.error)
                if failures >= limit:
                    message = f"Communication lost: {result.error}"
                    logger.warning(message)
                    self._monitor_data = replace(
                        self._monitor_data, communication_error=message
                    )
                    failures = 0

            self._monitor_stop.wait(self.config.monitor_interval_s)
