"""
Board registry for FAST Pinball hardware.

Provides protocol kinds, the EXP address table, and catalog key helpers.
"""

from .boards import (
    ProtocolKind,
    BoardAddressEntry,
    EXP_ADDRESS_MAP,
    NET_BOARD_TYPE,
    NET_CATALOG_KEY,
    board_type_for_address,
    catalog_key,
)

__all__ = [
    "ProtocolKind",
    "BoardAddressEntry",
    "EXP_ADDRESS_MAP",
    "NET_BOARD_TYPE",
    "NET_CATALOG_KEY",
    "board_type_for_address",
    "catalog_key",
]
