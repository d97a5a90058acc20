"""
Standardized warning messages.

Structured warning items with stable codes, so the CLI can render flash
outcomes and common failures the same way every time.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from .results import FlashResult, VerificationOutcome


class MessageLevel(Enum):
    """Severity level for messages."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class WarningCode(Enum):
    """Stable warning codes for known conditions."""
    # Hardware
    W_DEVICE_NOT_FOUND = "W_DEVICE_NOT_FOUND"
    W_SERIAL_ERROR = "W_SERIAL_ERROR"

    # Firmware files
    W_FIRMWARE_NOT_FOUND = "W_FIRMWARE_NOT_FOUND"
    W_DOWNLOAD_FAILED = "W_DOWNLOAD_FAILED"

    # Flash outcome
    W_BOOTLOADER_TIMEOUT = "W_BOOTLOADER_TIMEOUT"
    W_VERIFY_MISMATCH = "W_VERIFY_MISMATCH"
    W_VERIFY_UNPARSEABLE = "W_VERIFY_UNPARSEABLE"
    W_VERIFY_TIMEOUT = "W_VERIFY_TIMEOUT"


WARNING_REMEDIATIONS: Dict[WarningCode, str] = {
    WarningCode.W_DEVICE_NOT_FOUND:
        "Check USB connection and power, then run the 'ports' command.",
    WarningCode.W_SERIAL_ERROR:
        "Close other apps using the port (MPF, serial terminals). Check USB driver.",
    WarningCode.W_FIRMWARE_NOT_FOUND:
        "Run 'get-latest-firmware', or check 'list-firmware' for available versions.",
    WarningCode.W_DOWNLOAD_FAILED:
        "Check network access, or unpack the firmware archive into the firmware directory.",
    WarningCode.W_BOOTLOADER_TIMEOUT:
        "The board may have rebooted already. Check the ID result below.",
    WarningCode.W_VERIFY_MISMATCH:
        "Power cycle the board and list it again. Re-flash if the version is still wrong.",
    WarningCode.W_VERIFY_UNPARSEABLE:
        "Power cycle the board and list it again to confirm the installed version.",
    WarningCode.W_VERIFY_TIMEOUT:
        "The board did not answer. Power cycle it and list it again.",
}


@dataclass
class WarningItem:
    """
    Structured warning message with stable code.

    Attributes:
        level: Severity (INFO, WARN, ERROR)
        code: Stable warning code for programmatic handling
        title: Short, user-facing title
        detail: Longer explanation of the issue
        remediation: Suggested action to resolve the issue
    """
    level: MessageLevel
    code: WarningCode
    title: str
    detail: str = ""
    remediation: str = ""

    def __post_init__(self):
        if not self.remediation and self.code in WARNING_REMEDIATIONS:
            self.remediation = WARNING_REMEDIATIONS[self.code]

    @classmethod
    def info(cls, code: WarningCode, title: str, detail: str = "") -> "WarningItem":
        return cls(MessageLevel.INFO, code, title, detail)

    @classmethod
    def warn(cls, code: WarningCode, title: str, detail: str = "") -> "WarningItem":
        return cls(MessageLevel.WARN, code, title, detail)

    @classmethod
    def error(cls, code: WarningCode, title: str, detail: str = "") -> "WarningItem":
        return cls(MessageLevel.ERROR, code, title, detail)


_OUTCOME_CODES = {
    VerificationOutcome.MISMATCH: WarningCode.W_VERIFY_MISMATCH,
    VerificationOutcome.UNPARSEABLE: WarningCode.W_VERIFY_UNPARSEABLE,
    VerificationOutcome.TIMED_OUT: WarningCode.W_VERIFY_TIMEOUT,
}


def result_to_warnings(result: FlashResult) -> List[WarningItem]:
    """
    Convert a flash result into structured warnings.

    A missing bootloader ack is informational; verification problems are
    warnings, one per problem message recorded on the result.

    Args:
        result: FlashResult from a flash operation

    Returns:
        List of WarningItem objects, empty for a clean verified flash
    """
    items = []

    if not result.bootloader_acked:
        items.append(WarningItem.info(
            WarningCode.W_BOOTLOADER_TIMEOUT,
            "Bootloader completion was not reported",
        ))

    code = _OUTCOME_CODES.get(result.outcome)
    if code is not None:
        verify_messages = [w for w in result.warnings if "bootloader" not in w.lower()]
        for message in verify_messages or [result.outcome.value]:
            items.append(WarningItem.warn(code, message, result.id_response.strip()))

    return items


COMMON_WARNINGS = {
    "no_hardware": WarningItem.error(
        WarningCode.W_DEVICE_NOT_FOUND,
        "No FAST controller found",
        "No serial port answered the ID: probe with a NET or EXP reply.",
    ),
    "no_exp": WarningItem.warn(
        WarningCode.W_DEVICE_NOT_FOUND,
        "No EXP bus found",
    ),
    "no_net": WarningItem.warn(
        WarningCode.W_DEVICE_NOT_FOUND,
        "No NET bus found",
    ),
}
