"""
Board registry for FAST Pinball hardware.

Provides a single source of truth for:
- The two serial bus protocols (NET and EXP)
- The fixed EXP bus address table (which address belongs to which board model)
- Catalog key construction for firmware lookups

Usage:
    from fast_pinball_flasher.models import (
        ProtocolKind, board_type_for_address, catalog_key
    )

    board_type = board_type_for_address("88")     # "FP-EXP-0091"
    key = catalog_key(board_type, ProtocolKind.EXP)  # "FP-EXP-0091_EXP"
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ProtocolKind(Enum):
    """Serial bus protocol spoken by a port."""
    NET = "NET"     # Controller / node network bus
    EXP = "EXP"     # Expansion bus, boards addressed by hex byte

    @classmethod
    def from_token(cls, token: str) -> Optional["ProtocolKind"]:
        """Map an ``ID:`` reply token to a protocol, case-insensitively."""
        token = token.strip().upper()
        if token == cls.NET.value:
            return cls.NET
        if token == cls.EXP.value:
            return cls.EXP
        return None


@dataclass(frozen=True)
class BoardAddressEntry:
    """One EXP bus address and the board model that answers there."""
    address: str
    board_type: str


# Main controller board; also answers on EXP address 48 (Neuron built-in EXP)
NET_BOARD_TYPE = "FP-CPU-2000"


# ============================================================================
# EXP ADDRESS TABLE - from the FAST board documentation
# ============================================================================

_EXP_ADDRESS_TABLE: List[Tuple[str, str]] = [
    ("48", NET_BOARD_TYPE),
    # FP-EXP-0051 (D0-D3)
    ("D0", "FP-EXP-0051"),
    ("D1", "FP-EXP-0051"),
    ("D2", "FP-EXP-0051"),
    ("D3", "FP-EXP-0051"),
    # FP-EXP-0061 (90-93)
    ("90", "FP-EXP-0061"),
    ("91", "FP-EXP-0061"),
    ("92", "FP-EXP-0061"),
    ("93", "FP-EXP-0061"),
    # FP-EXP-0071 (B4-B7)
    ("B4", "FP-EXP-0071"),
    ("B5", "FP-EXP-0071"),
    ("B6", "FP-EXP-0071"),
    ("B7", "FP-EXP-0071"),
    # FP-EXP-0081 (84-87)
    ("84", "FP-EXP-0081"),
    ("85", "FP-EXP-0081"),
    ("86", "FP-EXP-0081"),
    ("87", "FP-EXP-0081"),
    # FP-EXP-0091 (88-8B)
    ("88", "FP-EXP-0091"),
    ("89", "FP-EXP-0091"),
    ("8A", "FP-EXP-0091"),
    ("8B", "FP-EXP-0091"),
    # FP-EXP-1313 (30-33)
    ("30", "FP-EXP-1313"),
    ("31", "FP-EXP-1313"),
    ("32", "FP-EXP-1313"),
    ("33", "FP-EXP-1313"),
]

EXP_ADDRESS_MAP: Tuple[BoardAddressEntry, ...] = tuple(
    BoardAddressEntry(address, board_type)
    for address, board_type in _EXP_ADDRESS_TABLE
)

_BOARD_BY_ADDRESS: Dict[str, str] = {
    entry.address: entry.board_type for entry in EXP_ADDRESS_MAP
}


def board_type_for_address(address: str) -> Optional[str]:
    """
    Get the board model expected at an EXP bus address.

    Args:
        address: Hex address string (case-insensitive, e.g. "8a" or "8A")

    Returns:
        Board type name, or None if the address is not in the table.
    """
    return _BOARD_BY_ADDRESS.get(address.strip().upper())


def catalog_key(board_type: str, protocol: ProtocolKind) -> str:
    """Build the ``{BoardType}_{Protocol}`` firmware catalog key."""
    return f"{board_type}_{protocol.value}"


NET_CATALOG_KEY = catalog_key(NET_BOARD_TYPE, ProtocolKind.NET)
