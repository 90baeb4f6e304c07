"""BLE client that connects a :class:`BmsProtocol` to a real battery.

Runs on the caller's asyncio loop. Notifications are fed straight into the
protocol; for polled protocols a background task writes the poll commands
every ``poll_interval_ms``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from ..config import BmsClientConfig
from ..models.bms import BmsData, BmsType
from ..protocol.errors import TransportError
from ..protocol.result import Result
from . import create_protocol
from .base import BmsProtocol

logger = logging.getLogger(__name__)

NAME_PREFIXES: dict[BmsType, tuple[str, ...]] = {
    BmsType.JK_BMS: ("jk_", "jk-"),
    BmsType.JBD_BMS: ("xiaoxiang", "jbd", "sp"),
    BmsType.ANT_BMS: ("ant",),
    BmsType.DALY_BMS: ("dl-", "daly"),
    BmsType.NONE: (),
}


@dataclass
class BmsDevice:
    """A BMS seen during a scan."""

    name: str
    address: str
    rssi: int | None = None

    def to_dict(self) -> dict:
        return {"name": self.name, "address": self.address, "rssi": self.rssi}


def matches_advertisement(
    bms_type: BmsType,
    service_uuid: str,
    name: str | None,
    advertised_uuids: list[str],
) -> bool:
    """True if an advertisement looks like a ``bms_type`` device.

    Matches on the 16-bit service id inside any advertised UUID, or on the
    vendor's usual name prefixes.
    """
    if bms_type == BmsType.NONE:
        return False
    short = service_uuid.lower()[4:8]
    if any(short in uuid.lower() for uuid in advertised_uuids):
        return True
    if name:
        lowered = name.lower()
        return any(lowered.startswith(p) for p in NAME_PREFIXES[bms_type])
    return False


class BmsClient:
    """One BLE BMS connection at a time.

    Usage::

        client = BmsClient()
        devices = await client.scan(BmsType.JK_BMS)
        (await client.connect(devices[0].address, BmsType.JK_BMS)).unwrap()
        print(client.data.soc)
        await client.disconnect()
    """

    def __init__(self, config: BmsClientConfig | None = None) -> None:
        self.config = config or BmsClientConfig()
        self._client: BleakClient | None = None
        self._protocol: BmsProtocol | None = None
        self._bms_type = BmsType.NONE
        self._poll_task: asyncio.Task | None = None
        self._data = BmsData()
        self._last_update: float | None = None
        self.status_message = "Disconnected"

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    @property
    def bms_type(self) -> BmsType:
        return self._bms_type

    @property
    def data(self) -> BmsData:
        return self._data

    @property
    def last_update(self) -> float | None:
        """``time.monotonic()`` of the last decoded snapshot."""
        return self._last_update

    def is_stale(self, max_age_s: float | None = None) -> bool:
        if self._last_update is None:
            return True
        limit = self.config.stale_after_s if max_age_s is None else max_age_s
        return time.monotonic() - self._last_update > limit

    async def scan(self, bms_type: BmsType, timeout: float | None = None) -> list[BmsDevice]:
        """Discover nearby devices that look like ``bms_type``."""
        if bms_type == BmsType.NONE:
            return []
        service_uuid = create_protocol(bms_type).uuids.service
        found = await BleakScanner.discover(
            timeout=timeout or self.config.scan_timeout_s, return_adv=True
        )

        devices = []
        for address, (device, adv) in found.items():
            name = adv.local_name or device.name
            if matches_advertisement(bms_type, service_uuid, name, list(adv.service_uuids)):
                devices.append(BmsDevice(name=name or address, address=address, rssi=adv.rssi))
        logger.info("Scan for %s found %d device(s)", bms_type.label, len(devices))
        return devices

    async def connect(self, address: str, bms_type: BmsType) -> Result[None]:
        """Connect, subscribe, send the handshake and start polling."""
        if bms_type == BmsType.NONE:
            return Result.failure(ValueError("No BMS type selected"))

        await self.disconnect()
        self.status_message = "Connecting..."
        protocol = create_protocol(bms_type)
        uuids = protocol.uuids

        try:
            device = await BleakScanner.find_device_by_address(
                address, timeout=self.config.lookup_timeout_s
            )
            if device is None:
                self.status_message = "Device not found"
                return Result.failure(TransportError("Device not found. Please scan again."))

            client = BleakClient(device)
            await client.connect()
            self._client = client
            self._protocol = protocol
            self._bms_type = bms_type

            await client.start_notify(uuids.notify, self._on_notification)
            await asyncio.sleep(self.config.notify_settle_s)

            for command in protocol.handshake_commands():
                await client.write_gatt_char(uuids.write, command, response=False)
                await asyncio.sleep(self.config.handshake_gap_s)
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.warning("BMS connect to %s failed: %s", address, e)
            await self.disconnect()
            self.status_message = f"Connection failed: {e}"
            return Result.failure(TransportError(str(e)))

        if protocol.poll_commands():
            self._poll_task = asyncio.create_task(self._poll_loop(client, protocol))

        self.status_message = f"{bms_type.label} connected"
        logger.info("Connected to %s at %s", bms_type.label, address)
        return Result.success(None)

    async def disconnect(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self._client is not None:
            try:
                await self._client.disconnect()
            except (BleakError, OSError) as e:
                logger.debug("Ignoring disconnect error: %s", e)
            logger.info("Disconnected from %s", self._bms_type.label)
            self._client = None

        if self._protocol is not None:
            self._protocol.reset()
            self._protocol = None

        self._bms_type = BmsType.NONE
        self._data = BmsData()
        self._last_update = None
        self.status_message = "Disconnected"

    def _on_notification(self, _sender, data: bytearray) -> None:
        protocol = self._protocol
        if protocol is None:
            return
        protocol.on_notification(bytes(data))
        snapshot = protocol.latest_data()
        if snapshot is not None:
            self._data = snapshot
            self._last_update = time.monotonic()

    async def _poll_loop(self, client: BleakClient, protocol: BmsProtocol) -> None:
        commands = protocol.poll_commands()
        write_uuid = protocol.uuids.write
        interval = protocol.poll_interval_ms / 1000
        while True:
            try:
                for command in commands:
                    await client.write_gatt_char(write_uuid, command, response=False)
                    await asyncio.sleep(self.config.poll_command_gap_s)
            except (BleakError, OSError) as e:
                logger.warning("BMS poll write failed, retrying next cycle: %s", e)
            await asyncio.sleep(interval)
