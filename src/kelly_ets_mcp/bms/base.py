"""Capability contract shared by the BMS wire protocols."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from ..models.bms import BmsData, BmsType, BmsUuids
from .accumulator import ByteAccumulator

logger = logging.getLogger(__name__)


class BmsProtocol(ABC):
    """Builds command frames and turns notification chunks into :class:`BmsData`.

    Chunks may split or batch frames arbitrarily. Each instance owns one
    :class:`ByteAccumulator` and is driven by a single connection.
    """

    bms_type: BmsType = BmsType.NONE
    uuids: BmsUuids
    poll_interval_ms: int = 1000

    def __init__(self) -> None:
        self._buffer = ByteAccumulator()
        self._last_data: BmsData | None = None

    @abstractmethod
    def handshake_commands(self) -> list[bytes]:
        """Commands sent once after connecting."""

    @abstractmethod
    def poll_commands(self) -> list[bytes]:
        """Commands sent every poll cycle. Empty for streaming protocols."""

    def on_notification(self, data: bytes) -> None:
        """Feed one notification chunk, then decode every complete frame."""
        self._buffer.append(data)
        self._parse_buffer()

    @abstractmethod
    def _parse_buffer(self) -> None:
        """Consume complete frames from the accumulator."""

    def latest_data(self) -> BmsData | None:
        """Most recent snapshot. Not cleared by reading."""
        return self._last_data

    def reset(self) -> None:
        self._buffer.reset()
        self._last_data = None

    @property
    def buffered(self) -> int:
        return len(self._buffer)
