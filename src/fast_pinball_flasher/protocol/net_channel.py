"""
NET bus channel.

The NET bus addresses one controller (FP-CPU-2000). Nodes behind it are
enumerated sequentially with ``NN:{index:02d}`` until the controller reports
``!Node Not Found!`` or stops answering.
"""

import logging
from typing import Callable, List, Optional

from fast_pinball_flasher.catalog import FirmwareCatalog
from fast_pinball_flasher.core.parsing import normalize_version
from fast_pinball_flasher.core.results import FlashResult
from fast_pinball_flasher.models import NET_BOARD_TYPE, NET_CATALOG_KEY

from .flash import NET_PROFILE, FirmwareFlasher, FlashProfile, id_command
from .responses import NodeInfo, is_node_not_found, parse_id_response, parse_node_record
from .timing import SYSTEM_CLOCK, Clock
from .transport import NET_READ_TIMEOUT, ByteChannel, SerialTransport, TransportError

logger = logging.getLogger(__name__)

BROADCAST_UPDATE = b"bn:aa55\r"
CONTROLLER_NODE_ID = "NC"
MAX_NODES = 100

PROBE_REPLY_DELAY = 0.01
PROBE_GAP = 0.005


def node_command(index: int) -> bytes:
    return f"NN:{index:02d}\r".encode("ascii")


class NetChannel:
    """
    Exclusive owner of the NET serial endpoint.

    Example:
        with NetChannel.open_port("/dev/ttyACM0", catalog) as net:
            nodes = net.enumerate()
            result = net.update_firmware("2.28")
    """

    def __init__(
        self,
        transport: ByteChannel,
        catalog: FirmwareCatalog,
        clock: Clock = SYSTEM_CLOCK,
        profile: FlashProfile = NET_PROFILE,
    ):
        self.transport = transport
        self.catalog = catalog
        self.clock = clock
        self._flasher = FirmwareFlasher(transport, profile, clock)

    @classmethod
    def open_port(
        cls,
        port: str,
        catalog: FirmwareCatalog,
        clock: Clock = SYSTEM_CLOCK,
    ) -> "NetChannel":
        """Open ``port`` with the NET read timeout and wrap it."""
        transport = SerialTransport(port, timeout=NET_READ_TIMEOUT).open()
        return cls(transport, catalog, clock)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "NetChannel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _query(self, command: bytes) -> str:
        self.transport.write(command)
        self.transport.flush()
        self.clock.sleep(PROBE_REPLY_DELAY)
        return self.transport.read_text().strip()

    def _query_controller(self):
        try:
            return parse_id_response(self._query(id_command()))
        except TransportError as e:
            logger.debug(f"Controller ID query failed: {e}")
            return None

    def enumerate(self) -> List[NodeInfo]:
        """
        List NET nodes in scan order, followed by the controller itself.

        The controller entry uses node id "NC" and carries the board name and
        version from its ``ID:`` reply; it is omitted if that reply did not parse.
        A node whose query fails on the port is skipped.
        """
        nodes: List[NodeInfo] = []
        self.transport.drain()

        controller = self._query_controller()

        for index in range(MAX_NODES):
            try:
                reply = self._query(node_command(index))
            except TransportError as e:
                logger.debug(f"NN:{index:02d} failed: {e}")
                self.clock.sleep(PROBE_GAP)
                continue
            if is_node_not_found(reply):
                break

            info = parse_node_record(reply)
            if info is not None:
                nodes.append(info)
            else:
                logger.debug(f"Unparseable node reply for NN:{index:02d}: {reply!r}")

            self.clock.sleep(PROBE_GAP)

        if controller is not None:
            _, board, version = controller
            nodes.append(NodeInfo(
                node_id=CONTROLLER_NODE_ID,
                node_name=board,
                firmware=version,
            ))

        return nodes

    def broadcast_update(self) -> None:
        """Ask subordinate I/O boards to pick up the new firmware; no reply expected."""
        logger.info(
            "Attempting to update remaining node boards. "
            "Not all I/O boards may have an update."
        )
        try:
            self.transport.write(BROADCAST_UPDATE)
            self.transport.flush()
        except TransportError as e:
            logger.warning(f"Node update broadcast failed: {e}")

    def update_firmware(
        self,
        version: str,
        progress_cb: Optional[Callable[[int, int], None]] = None,
    ) -> FlashResult:
        """
        Flash the controller to ``version``, verify, then broadcast to nodes.

        The broadcast is sent whatever the verification outcome, and also
        after a flash that aborted part way.

        Raises:
            FirmwareNotFound: No ``FP-CPU-2000_NET`` entry for the version
            TargetSelectError: Port failed before any record was sent
            FirmwareStreamError: I/O error while streaming
        """
        normalized = normalize_version(version)
        path = self.catalog.lookup(NET_CATALOG_KEY, normalized)

        try:
            return self._flasher.flash(
                board_type=NET_BOARD_TYPE,
                version=normalized,
                path=path,
                progress_cb=progress_cb,
            )
        finally:
            self.broadcast_update()
