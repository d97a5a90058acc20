"""
Core workflow actions for FAST Pinball Flasher.

This module exposes the session-level operations the CLI calls: find the
buses, open their channels, list boards, and flash one target with the
operation's log lines captured into the result.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from fast_pinball_flasher.catalog import FirmwareCatalog
from fast_pinball_flasher.discovery import PortDiscovery, first_ports
from fast_pinball_flasher.models import ProtocolKind
from fast_pinball_flasher.protocol.exp_channel import ExpChannel
from fast_pinball_flasher.protocol.net_channel import NetChannel
from fast_pinball_flasher.protocol.responses import BoardInfo, NodeInfo
from fast_pinball_flasher.protocol.timing import SYSTEM_CLOCK, Clock
from fast_pinball_flasher.protocol.transport import TransportError

from .results import FlashResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class NoHardwareFound(Exception):
    """No serial port answered the identity probe as NET or EXP."""


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "fast_pinball_flasher"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


@dataclass
class FlasherSession:
    """
    Open channels to the buses found at startup.

    Either channel may be None when only one bus is attached.
    """
    catalog: FirmwareCatalog
    ports: Dict[ProtocolKind, str] = field(default_factory=dict)
    exp: Optional[ExpChannel] = None
    net: Optional[NetChannel] = None

    def close(self) -> None:
        for channel in (self.exp, self.net):
            if channel is not None:
                channel.close()
        self.exp = None
        self.net = None

    def __enter__(self) -> "FlasherSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def discover_buses(discovery: Optional[PortDiscovery] = None) -> Dict[ProtocolKind, str]:
    """
    Probe all serial ports and pick one port per bus.

    Raises:
        NoHardwareFound: If neither bus answered
    """
    discovery = discovery or PortDiscovery()
    ports = first_ports(discovery.discover())
    if not ports:
        raise NoHardwareFound("No FAST hardware found on any serial port")
    for protocol, port in ports.items():
        logger.info(f"{protocol.value} bus on {port}")
    return ports


def open_session(
    catalog: FirmwareCatalog,
    discovery: Optional[PortDiscovery] = None,
    clock: Clock = SYSTEM_CLOCK,
    exp_opener: Callable[..., ExpChannel] = ExpChannel.open_port,
    net_opener: Callable[..., NetChannel] = NetChannel.open_port,
) -> FlasherSession:
    """
    Discover the buses and open a channel on each one found.

    A bus whose port fails to reopen is logged and left as None.

    Raises:
        NoHardwareFound: If neither bus answered the probe
    """
    ports = discover_buses(discovery)
    session = FlasherSession(catalog=catalog, ports=ports)

    if ProtocolKind.EXP in ports:
        try:
            session.exp = exp_opener(ports[ProtocolKind.EXP], catalog, clock)
        except TransportError as e:
            logger.warning(f"Could not open EXP port {ports[ProtocolKind.EXP]}: {e}")
    if ProtocolKind.NET in ports:
        try:
            session.net = net_opener(ports[ProtocolKind.NET], catalog, clock)
        except TransportError as e:
            logger.warning(f"Could not open NET port {ports[ProtocolKind.NET]}: {e}")

    return session


def list_exp_boards(session: FlasherSession) -> List[BoardInfo]:
    """Boards answering on the EXP bus; empty when there is no EXP bus."""
    if session.exp is None:
        return []
    return session.exp.enumerate()


def list_net_nodes(session: FlasherSession) -> List[NodeInfo]:
    """Nodes on the NET bus plus the controller; empty when there is no NET bus."""
    if session.net is None:
        return []
    return session.net.enumerate()


def installed_version(boards: List[BoardInfo], address: str) -> Optional[str]:
    """Version an EXP board at ``address`` reported during enumeration."""
    wanted = address.strip().upper()
    for board in boards:
        if board.address.upper() == wanted:
            return board.version
    return None


def flash_exp_board(
    session: FlasherSession,
    address: str,
    version: str,
    progress_cb: Optional[ProgressCallback] = None,
) -> FlashResult:
    """
    Flash one EXP board and verify it.

    Args:
        session: Open session with an EXP channel
        address: EXP bus address
        version: Firmware version, any form
        progress_cb: Optional callback(bytes_sent, total_bytes)

    Returns:
        FlashResult with ``logs`` holding the captured log lines

    Raises:
        NoHardwareFound: If the session has no EXP channel
        UnknownBoardAddress, FirmwareNotFound, TargetSelectError,
            FirmwareStreamError: Flash aborted
    """
    if session.exp is None:
        raise NoHardwareFound("No EXP bus connected")

    with _capture_logs() as logs:
        result = session.exp.update_firmware(address, version, progress_cb=progress_cb)
    result.logs = list(logs)
    return result


def flash_net(
    session: FlasherSession,
    version: str,
    progress_cb: Optional[ProgressCallback] = None,
) -> FlashResult:
    """
    Flash the NET controller, verify it, and broadcast the node update.

    Raises:
        NoHardwareFound: If the session has no NET channel
        FirmwareNotFound, FirmwareStreamError: Flash aborted
    """
    if session.net is None:
        raise NoHardwareFound("No NET bus connected")

    with _capture_logs() as logs:
        result = session.net.update_firmware(version, progress_cb=progress_cb)
    result.logs = list(logs)
    return result
