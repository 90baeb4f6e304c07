"""BMS wire protocols (JK, JBD, ANT, Daly) and the BLE client that drives them."""

from ..models.bms import BmsType
from .accumulator import ByteAccumulator
from .base import BmsProtocol
from .jk import JkBmsProtocol
from .jbd import JbdBmsProtocol
from .ant import AntBmsProtocol
from .daly import DalyBmsProtocol

_PROTOCOLS = {
    BmsType.JK_BMS: JkBmsProtocol,
    BmsType.JBD_BMS: JbdBmsProtocol,
    BmsType.ANT_BMS: AntBmsProtocol,
    BmsType.DALY_BMS: DalyBmsProtocol,
}


def create_protocol(bms_type: BmsType) -> BmsProtocol:
    """Return a fresh protocol handler for a BMS vendor.

    Raises:
        ValueError: For ``BmsType.NONE``.
    """
    try:
        return _PROTOCOLS[bms_type]()
    except KeyError:
        raise ValueError("No BMS type selected") from None
