"""Protocol layer: ETS packet framing, command builders, response parsing and retry engine."""

from .framing import EtsPacket, build_tx_packet, parse_rx_packet, parse_rx_response
from .commands import EtsCommand, build_command
from .engine import EtsProtocol
from .errors import (
    KellyError,
    TransportError,
    ProtocolError,
    MalformedPacket,
    CommandMismatch,
    ChecksumMismatch,
    ReceiveTimeout,
    UnsupportedController,
)
from .result import Result
