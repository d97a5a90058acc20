"""
Core module for FAST Pinball Flasher.

This module provides the single source of truth for:
- Version and address parsing (parsing.py)
- Flash result objects (results.py)
- Standardized warnings/messages (messages.py)

Session workflows (discover, list, flash) live in ``core.actions``, which
depends on the protocol layer and is imported from there directly.
"""

from .parsing import (
    parse_version,
    format_version,
    normalize_version,
    sort_versions,
    version_key,
    parse_address,
)
from .results import FlashResult, VerificationOutcome
from .messages import (
    MessageLevel,
    WarningCode,
    WarningItem,
    result_to_warnings,
    COMMON_WARNINGS,
)

__all__ = [
    # Parsing
    "parse_version",
    "format_version",
    "normalize_version",
    "sort_versions",
    "version_key",
    "parse_address",
    # Results
    "FlashResult",
    "VerificationOutcome",
    # Messages
    "MessageLevel",
    "WarningCode",
    "WarningItem",
    "result_to_warnings",
    "COMMON_WARNINGS",
]
