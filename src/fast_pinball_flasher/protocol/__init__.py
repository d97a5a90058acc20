"""Serial protocol layer - transport, flash procedure and bus channels."""

from .transport import (
    SerialTransport,
    ByteChannel,
    TransportError,
    PortUnavailable,
)
from .timing import Clock, SYSTEM_CLOCK, poll_for
from .responses import (
    BoardInfo,
    NodeInfo,
    parse_protocol,
    parse_id_response,
    parse_node_record,
)
from .flash import (
    FirmwareFlasher,
    FlashProfile,
    FlashError,
    UnknownBoardAddress,
    FirmwareStreamError,
    ChannelBusy,
    EXP_PROFILE,
    NET_PROFILE,
)
from .exp_channel import ExpChannel
from .net_channel import NetChannel

__all__ = [
    # Transport
    "SerialTransport",
    "ByteChannel",
    "TransportError",
    "PortUnavailable",
    # Timing
    "Clock",
    "SYSTEM_CLOCK",
    "poll_for",
    # Responses
    "BoardInfo",
    "NodeInfo",
    "parse_protocol",
    "parse_id_response",
    "parse_node_record",
    # Flash procedure
    "FirmwareFlasher",
    "FlashProfile",
    "FlashError",
    "UnknownBoardAddress",
    "FirmwareStreamError",
    "ChannelBusy",
    "EXP_PROFILE",
    "NET_PROFILE",
    # Channels
    "ExpChannel",
    "NetChannel",
]
