"""
EXP bus channel.

Enumerates expansion boards by probing every address in the board address
table, and flashes a single board selected by address.
"""

import logging
from typing import Callable, List, Optional

from fast_pinball_flasher.catalog import FirmwareCatalog
from fast_pinball_flasher.core.parsing import normalize_version
from fast_pinball_flasher.core.results import FlashResult
from fast_pinball_flasher.models import (
    EXP_ADDRESS_MAP,
    ProtocolKind,
    board_type_for_address,
    catalog_key,
)

from .flash import EXP_PROFILE, FirmwareFlasher, FlashProfile, UnknownBoardAddress, id_command
from .responses import BoardInfo, parse_id_response
from .timing import SYSTEM_CLOCK, Clock
from .transport import EXP_READ_TIMEOUT, ByteChannel, SerialTransport, TransportError

logger = logging.getLogger(__name__)

PROBE_REPLY_DELAY = 0.01
PROBE_GAP = 0.005


class ExpChannel:
    """
    Exclusive owner of the EXP serial endpoint.

    Example:
        with ExpChannel.open_port("/dev/ttyACM1", catalog) as exp:
            for board in exp.enumerate():
                print(board.address, board.board_name, board.version)
            result = exp.update_firmware("88", "0.48")
    """

    def __init__(
        self,
        transport: ByteChannel,
        catalog: FirmwareCatalog,
        clock: Clock = SYSTEM_CLOCK,
        profile: FlashProfile = EXP_PROFILE,
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
    ) -> "ExpChannel":
        """Open ``port`` with the EXP read timeout and wrap it."""
        transport = SerialTransport(port, timeout=EXP_READ_TIMEOUT).open()
        return cls(transport, catalog, clock)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "ExpChannel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _available_versions(self, board_name: str, board_type: str, protocol: str) -> Optional[List[str]]:
        for key in (f"{board_name}_{protocol}", f"{board_type}_{protocol}"):
            if self.catalog.has_key(key):
                return self.catalog.versions(key)
        return None

    def _query(self, command: bytes) -> str:
        self.transport.write(command)
        self.transport.flush()
        self.clock.sleep(PROBE_REPLY_DELAY)
        return self.transport.read_text().strip()

    def enumerate(self) -> List[BoardInfo]:
        """
        Probe every table address with ``ID@{address}:`` and collect replies.

        Silent addresses are skipped, as are addresses whose query fails on
        the port; a missing board is not an error.
        """
        results: List[BoardInfo] = []
        self.transport.drain()

        for entry in EXP_ADDRESS_MAP:
            try:
                reply = self._query(id_command(entry.address))
            except TransportError as e:
                logger.debug(f"EXP {entry.address} query failed: {e}")
                reply = ""

            parsed = parse_id_response(reply)
            if parsed is not None:
                protocol, board_name, version = parsed
                results.append(BoardInfo(
                    address=entry.address,
                    board_name=board_name,
                    version=version,
                    available_versions=self._available_versions(
                        board_name, entry.board_type, protocol
                    ),
                ))
                logger.debug(f"EXP {entry.address}: {board_name} {version}")

            self.clock.sleep(PROBE_GAP)

        return results

    def update_firmware(
        self,
        address: str,
        version: str,
        progress_cb: Optional[Callable[[int, int], None]] = None,
    ) -> FlashResult:
        """
        Flash the board at ``address`` to ``version`` and verify it.

        Args:
            address: EXP bus address (hex, case-insensitive)
            version: Firmware version, any form ("0.48", "2.8")
            progress_cb: Optional callback(bytes_sent, total_bytes)

        Raises:
            UnknownBoardAddress: Address not in the board address table
            FirmwareNotFound: No catalog entry for the board type / version
            TargetSelectError: Port failed before any record was sent
            FirmwareStreamError: I/O error while streaming
        """
        board_type = board_type_for_address(address)
        if board_type is None:
            logger.error(f"Unknown EXP board address: {address}")
            raise UnknownBoardAddress(address)

        normalized = normalize_version(version)
        path = self.catalog.lookup(catalog_key(board_type, ProtocolKind.EXP), normalized)

        return self._flasher.flash(
            board_type=board_type,
            version=normalized,
            path=path,
            address=address.strip().upper(),
            progress_cb=progress_cb,
        )
