"""Runtime settings for the controller session and the BMS client."""

from __future__ import annotations

from dataclasses import dataclass

from .transport.base import TransportType

# Receive deadlines per link. RFCOMM adds latency over the FT232 bridge.
RECEIVE_TIMEOUT_MS = {
    TransportType.USB: 100,
    TransportType.BLUETOOTH_CLASSIC: 300,
    TransportType.MOCK: 100,
}


@dataclass
class SessionConfig:
    """Controller session settings.

    Attributes:
        baudrate: Serial speed of the ETS link.
        receive_timeout_ms: Deadline for each response.
        expected_response_length: Bytes requested per receive (largest frame).
        monitor_interval_s: Pause between monitor polls.
        settle_delay_s: Pause after stopping the monitor before flash access.
        max_consecutive_failures: Failed monitor polls before reporting loss.
        auto_monitor: Start monitoring after a successful connect.
    """

    baudrate: int = 19200
    receive_timeout_ms: int = 100
    expected_response_length: int = 19
    monitor_interval_s: float = 0.01
    settle_delay_s: float = 0.3
    max_consecutive_failures: int = 5
    auto_monitor: bool = True

    @classmethod
    def for_transport(cls, transport_type: TransportType, **overrides) -> SessionConfig:
        config = cls(receive_timeout_ms=RECEIVE_TIMEOUT_MS[transport_type])
        for key, value in overrides.items():
            if not hasattr(config, key):
                raise ValueError(f"Unknown session setting: {key}")
            setattr(config, key, value)
        return config


@dataclass
class BmsClientConfig:
    """BLE BMS client timing, in seconds."""

    scan_timeout_s: float = 5.0
    lookup_timeout_s: float = 5.0
    notify_settle_s: float = 0.2
    handshake_gap_s: float = 0.1
    poll_command_gap_s: float = 0.05
    stale_after_s: float = 10.0
