"""
Result objects for flash operations.

Provides a unified result structure the CLI and the orchestration layer use
to report flash outcomes consistently.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class VerificationOutcome(Enum):
    """Final state of the post-flash identity check."""
    VERIFIED = "verified"
    MISMATCH = "mismatch"           # ID line parsed, board and/or version differ
    UNPARSEABLE = "unparseable"     # Reply arrived, no usable ID line
    TIMED_OUT = "timed_out"         # Nothing at all arrived within the verify window


@dataclass
class FlashResult:
    """
    Outcome of one firmware flash.

    A flash that streamed to completion is "attempted" even when verification
    fails; only aborts (unknown address, missing firmware, I/O error) raise.

    Attributes:
        protocol: "EXP" or "NET"
        board_type: Board model the image was built for
        version: Canonical version that was flashed
        path: Firmware file streamed
        address: EXP bus address, None for NET
        total_bytes: Size of the firmware file
        bytes_sent: Bytes written to the port
        bootloader_acked: Whether the bootloader completion token was seen
        outcome: Verification outcome
        reported_board: Board name from the ID reply, if parsed
        reported_version: Version from the ID reply, if parsed
        mismatched_fields: "board" and/or "version" on MISMATCH
        id_response: Raw ID reply text
        warnings: Non-fatal issues encountered
        logs: Captured log lines from the operation
    """
    protocol: str
    board_type: str
    version: str
    path: str
    address: Optional[str] = None
    total_bytes: int = 0
    bytes_sent: int = 0
    bootloader_acked: bool = False
    outcome: VerificationOutcome = VerificationOutcome.UNPARSEABLE
    reported_board: Optional[str] = None
    reported_version: Optional[str] = None
    mismatched_fields: List[str] = field(default_factory=list)
    id_response: str = ""
    warnings: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return self.outcome is VerificationOutcome.VERIFIED

    @property
    def target(self) -> str:
        """Human-readable target description."""
        if self.address is not None:
            return f"{self.board_type} @ {self.address}"
        return self.board_type

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)
