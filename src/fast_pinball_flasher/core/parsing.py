"""
Centralized parsing helpers for firmware versions and bus addresses.

Both the CLI and the protocol channels must import these helpers rather than
re-implement them.
"""

from typing import Optional, Tuple


def is_unsigned_int(text: str) -> bool:
    """True for a non-empty run of ASCII digits."""
    return text.isascii() and text.isdigit()


def parse_version(value: str) -> Optional[Tuple[int, int]]:
    """
    Parse a ``major.minor`` version string into an integer pair.

    Accepts:
        - "2.8", "2.08", "02.28"
        - Surrounding whitespace is ignored

    Returns:
        (major, minor) tuple, or None if either part is not an unsigned integer.
    """
    major_s, sep, minor_s = value.strip().partition(".")
    if not sep or not is_unsigned_int(major_s) or not is_unsigned_int(minor_s):
        return None
    return int(major_s), int(minor_s)


def format_version(major: int, minor: int) -> str:
    """Format a version pair in canonical ``{major}.{minor:02d}`` form."""
    return f"{major}.{minor:02d}"


def normalize_version(value: str) -> str:
    """
    Normalize a version string to the canonical catalog form.

    This is the single source of truth for version normalization.

    Examples:
        "2.8"  -> "2.08"
        "1.5"  -> "1.05"
        "2.08" -> "2.08"

    Values that do not parse as ``major.minor`` are returned unchanged
    (stripped), so a lookup with them simply misses.
    """
    parsed = parse_version(value)
    if parsed is None:
        return value.strip()
    return format_version(*parsed)


def version_key(value: str) -> Tuple[int, int]:
    """
    Sort key comparing versions numerically.

    Unparseable versions sort before every valid one.
    """
    parsed = parse_version(value)
    if parsed is None:
        return (-1, -1)
    return parsed


def sort_versions(versions, newest_first: bool = False) -> list:
    """Sort version strings by (major, minor), never as raw text."""
    return sorted(versions, key=version_key, reverse=newest_first)


def parse_address(value: str) -> str:
    """
    Parse an EXP bus address from user input.

    Accepts "88", "8a", "0x8A".

    Returns:
        Uppercase two-digit hex string.

    Raises:
        ValueError: If value is not a one-byte hex number.
    """
    text = value.strip()
    if text.lower().startswith("0x"):
        text = text[2:]
    try:
        number = int(text, 16)
    except ValueError:
        raise ValueError(f"Invalid EXP address '{value}'. Use hex like 88 or 0x8A.")
    if not 0 <= number <= 0xFF or len(text) > 2:
        raise ValueError(f"Invalid EXP address '{value}'. Must be a single byte (00-FF).")
    return f"{number:02X}"
