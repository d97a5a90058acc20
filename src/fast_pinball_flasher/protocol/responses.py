"""
Parsers for FAST serial replies.

Replies are free-form text matched by substring and token rules, not by
fixed-width framing. Serial buffers can hold stale or partial fragments, so
every parser searches for its marker instead of assuming it starts the text.
All functions here are pure.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from fast_pinball_flasher.core.parsing import is_unsigned_int
from fast_pinball_flasher.models import ProtocolKind

ID_MARKER = "ID:"
NODE_MARKER = "NN:"
NODE_NOT_FOUND = "!Node Not Found!"

_ALPHA_TOKEN = re.compile(r"[A-Za-z]*")


@dataclass
class BoardInfo:
    """EXP board answering on one bus address."""
    address: str
    board_name: str
    version: str
    available_versions: Optional[List[str]] = None


@dataclass
class NodeInfo:
    """NET node record, with any telemetry fields past the firmware kept in order."""
    node_id: str
    node_name: str
    firmware: str
    extra_fields: List[str] = field(default_factory=list)


def parse_protocol(text: str) -> Optional[ProtocolKind]:
    """
    Extract the protocol token following ``ID:``.

    Examples:
        "ID:EXP FP-EXP-0091 0.48" -> ProtocolKind.EXP
        "junk ID:net FP-CPU-2000"  -> ProtocolKind.NET
        "ID:XYZ"                   -> None
    """
    _, marker, after = text.partition(ID_MARKER)
    if not marker:
        return None
    token = _ALPHA_TOKEN.match(after.lstrip()).group(0)
    return ProtocolKind.from_token(token)


def parse_id_response(text: str) -> Optional[Tuple[str, str, str]]:
    """
    Parse an identity reply into (protocol, board name, version).

    Tolerates commas after the protocol token, e.g.
    "ID:EXP, FP-EXP-0091 v0.48" -> ("EXP", "FP-EXP-0091", "v0.48").

    Returns:
        Tuple of the first three tokens, or None if fewer than three exist.
    """
    _, marker, after = text.partition(ID_MARKER)
    if not marker:
        return None
    parts = after.replace(",", " ").split()
    if len(parts) < 3:
        return None
    return parts[0], parts[1], parts[2]


def parse_node_record(text: str) -> Optional[NodeInfo]:
    """
    Parse a ``NN:`` node enumeration reply.

    Uses the *last* ``NN:`` in the buffer and reads up to the next line break.
    Fields are comma separated: node id, node name, firmware, then any number
    of extra fields which are preserved.
    """
    idx = text.rfind(NODE_MARKER)
    if idx < 0:
        return None
    remainder = text[idx + len(NODE_MARKER):]
    lines = remainder.splitlines()
    line = lines[0] if lines else ""

    parts = [part.strip() for part in line.split(",")]
    if len(parts) < 3:
        return None

    return NodeInfo(
        node_id=parts[0],
        node_name=parts[1],
        firmware=parts[2],
        extra_fields=parts[3:],
    )


def is_node_not_found(text: str) -> bool:
    """True when the reply is empty or the controller reports no such node."""
    return not text.strip() or NODE_NOT_FOUND in text


def find_identity_lines(text: str, prefix: str) -> List[str]:
    """Return stripped lines starting with ``prefix`` (e.g. "ID:EXP"), in order."""
    found = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith(prefix):
            found.append(line)
    return found


def strip_version_suffix(version: str) -> str:
    """Drop trailing characters that are neither digits nor '.'."""
    end = len(version)
    while end and not (is_unsigned_int(version[end - 1]) or version[end - 1] == "."):
        end -= 1
    return version[:end]


def strip_major_zeros(version: str) -> str:
    """
    Trim leading zeros from the major component ("02.28" -> "2.28").

    An all-zero major becomes "0". Without a '.', the whole string is trimmed.
    """
    major, sep, rest = version.partition(".")
    major = major.lstrip("0") or "0"
    if not sep:
        return major
    return f"{major}.{rest}"
