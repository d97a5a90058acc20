"""
FAST firmware flash procedure.

Both board families flash the same way; only literals and pacing differ.

Protocol sequence:
1. Select the target: EXP sends ``ea:{address}\\r`` and discards the echo,
   NET just drains pending input
2. Stream the image as ``\\r``-terminated records, byte-for-byte, sleeping
   between records so the device's flash writes keep up
3. Wait (up to 30s) for the bootloader completion token; on timeout warn
   and continue, the board may already have rebooted
4. Query identity (``ID@{address}:\\r`` or ``ID:\\r``) and collect the reply
   for up to 5s or until a non-empty line arrives; read errors during
   either wait count as silence
5. Compare board name and version from the first parseable ID line
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple

from fast_pinball_flasher.core.results import FlashResult, VerificationOutcome
from fast_pinball_flasher.models import ProtocolKind

from .responses import find_identity_lines, strip_major_zeros, strip_version_suffix
from .timing import SYSTEM_CLOCK, Clock, poll_for
from .transport import ByteChannel, TransportError

logger = logging.getLogger(__name__)

RECORD_TERMINATOR = b"\r"
READ_BLOCK = 4096

EXP_BOOTLOADER_TOKEN = "!BL2040:02"
NET_BOOTLOADER_TOKEN = "!B:02"


class FlashError(Exception):
    """Base exception for flash operations that abort."""


class UnknownBoardAddress(FlashError):
    """EXP address is not in the board address table."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Unknown EXP board address: {address}")


class FirmwareStreamError(FlashError):
    """I/O failure while streaming the image; the flash is abandoned."""

    def __init__(self, path: str, bytes_sent: int, reason: Exception):
        self.path = path
        self.bytes_sent = bytes_sent
        self.reason = reason
        super().__init__(
            f"Firmware stream of '{path}' aborted after {bytes_sent} bytes: {reason}"
        )


class ChannelBusy(FlashError):
    """A flash is already running on this channel."""


class TargetSelectError(FlashError):
    """The port failed while selecting the target; nothing was streamed."""

    def __init__(self, target: str, reason: Exception):
        self.target = target
        self.reason = reason
        super().__init__(f"Could not select {target}: {reason}")


class FlashState(Enum):
    """Phases of one flash session."""
    IDLE = "idle"
    ADDRESS_SELECTED = "address_selected"
    STREAMING = "streaming"
    AWAITING_BOOTLOADER_ACK = "awaiting_bootloader_ack"
    VERIFYING = "verifying"
    DONE = "done"


@dataclass(frozen=True)
class FlashProfile:
    """
    Per-family flash parameters.

    Attributes:
        protocol: Bus protocol; also gives the ``ID:{protocol}`` line prefix
        record_delay: Sleep after each streamed record (seconds)
        ack_token: Bootloader completion token looked for after streaming
        strip_major_zeros: Trim leading zeros from the reported major version
        ack_timeout: Deadline for the bootloader token (seconds)
        verify_timeout: Deadline for the identity reply (seconds)
        poll_interval: Sleep between polls (seconds)
        select_delay: Wait after the select command before draining (seconds)
    """
    protocol: ProtocolKind
    record_delay: float
    ack_token: str
    strip_major_zeros: bool = False
    ack_timeout: float = 30.0
    verify_timeout: float = 5.0
    poll_interval: float = 0.05
    select_delay: float = 0.01

    @property
    def id_prefix(self) -> str:
        return f"ID:{self.protocol.value}"


EXP_PROFILE = FlashProfile(
    protocol=ProtocolKind.EXP,
    record_delay=0.2,
    ack_token=EXP_BOOTLOADER_TOKEN,
)

NET_PROFILE = FlashProfile(
    protocol=ProtocolKind.NET,
    record_delay=0.4,
    ack_token=NET_BOOTLOADER_TOKEN,
    strip_major_zeros=True,
)


def select_command(address: str) -> bytes:
    """EXP address-select command."""
    return f"ea:{address}\r".encode("ascii")


def id_command(address: Optional[str] = None) -> bytes:
    """Identity query; addressed on EXP, bare on NET."""
    if address is None:
        return b"ID:\r"
    return f"ID@{address}:\r".encode("ascii")


def iter_records(stream: BinaryIO, terminator: bytes = RECORD_TERMINATOR) -> Iterator[bytes]:
    """
    Split a binary stream into records, each ending with ``terminator``.

    Bytes are yielded unchanged, terminator included, so CRLF files keep
    their LF at the start of the following record. A trailing fragment
    without terminator is yielded last.
    """
    pending = b""
    while True:
        block = stream.read(READ_BLOCK)
        if not block:
            break
        pending += block
        while True:
            idx = pending.find(terminator)
            if idx < 0:
                break
            yield pending[:idx + len(terminator)]
            pending = pending[idx + len(terminator):]
    if pending:
        yield pending


def has_reply_line(text: str) -> bool:
    """True once a line with content has been terminated; bare line breaks do not count."""
    content = text.lstrip()
    return "\n" in content or "\r" in content


def evaluate_identity(
    text: str,
    prefix: str,
    expected_board: str,
    expected_version: str,
    major_zeros: bool = False,
) -> Tuple[VerificationOutcome, Optional[str], Optional[str], List[str]]:
    """
    Compare an identity reply against the expected board and version.

    The first line starting with ``prefix`` that splits into at least three
    whitespace tokens decides the outcome.

    Returns:
        Tuple of (outcome, reported_board, reported_version, mismatched_fields)
    """
    if not text.strip():
        return VerificationOutcome.TIMED_OUT, None, None, []

    for line in find_identity_lines(text, prefix):
        parts = line.split()
        if len(parts) < 3:
            continue
        board = parts[1]
        version = strip_version_suffix(parts[2])
        if major_zeros:
            version = strip_major_zeros(version)

        mismatched = []
        if board != expected_board:
            mismatched.append("board")
        if version != expected_version:
            mismatched.append("version")
        if mismatched:
            return VerificationOutcome.MISMATCH, board, version, mismatched
        return VerificationOutcome.VERIFIED, board, version, []

    return VerificationOutcome.UNPARSEABLE, None, None, []


@dataclass
class FlashSession:
    """Transient state of one flash; discarded when the call returns."""
    board_type: str
    version: str
    path: str
    address: Optional[str] = None
    total_bytes: int = 0
    bytes_sent: int = 0
    state: FlashState = FlashState.IDLE
    ack_deadline: Optional[float] = None
    verify_deadline: Optional[float] = None


class FirmwareFlasher:
    """
    Drives one flash over a byte channel.

    The channel must stay owned by the caller for the whole flash; the
    flasher refuses to start a second flash while one is running.
    """

    def __init__(
        self,
        channel: ByteChannel,
        profile: FlashProfile,
        clock: Clock = SYSTEM_CLOCK,
    ):
        self.channel = channel
        self.profile = profile
        self.clock = clock
        self._active = False

    def _send(self, data: bytes) -> None:
        self.channel.write(data)
        self.channel.flush()

    def select(self, session: FlashSession) -> None:
        """Target the board (EXP) or clear stale input (NET)."""
        if session.address is not None:
            logger.info(f"Selecting EXP address {session.address}...")
            try:
                self._send(select_command(session.address))
            except TransportError as e:
                logger.error(f"Failed to select EXP address {session.address}: {e}")
                raise TargetSelectError(f"EXP address {session.address}", e) from e
            self.clock.sleep(self.profile.select_delay)
        self.channel.drain()
        session.state = FlashState.ADDRESS_SELECTED

    def stream(
        self,
        session: FlashSession,
        progress_cb: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        """
        Send the firmware file record by record.

        Raises:
            FirmwareStreamError: On any file or port I/O error (no retry)
        """
        session.state = FlashState.STREAMING
        try:
            session.total_bytes = os.path.getsize(session.path)
        except OSError:
            session.total_bytes = 0

        logger.info(f"Flashing {session.path} ({session.total_bytes} bytes)...")
        try:
            with open(session.path, "rb") as fh:
                for record in iter_records(fh):
                    self._send(record)
                    session.bytes_sent += len(record)
                    if progress_cb:
                        progress_cb(session.bytes_sent, session.total_bytes)
                    self.clock.sleep(self.profile.record_delay)
        except (OSError, TransportError) as e:
            logger.error(f"Failed while streaming firmware file '{session.path}': {e}")
            raise FirmwareStreamError(session.path, session.bytes_sent, e) from e

        logger.debug(f"Stream complete: {session.bytes_sent} bytes sent")

    def _read_reply(self) -> str:
        """Read pending text; a failed read counts as silence."""
        try:
            return self.channel.read_text()
        except TransportError as e:
            logger.debug(f"Read failed while waiting for reply: {e}")
            return ""

    def await_bootloader(self, session: FlashSession) -> bool:
        """Wait for the bootloader completion token. Expiry only warns."""
        session.state = FlashState.AWAITING_BOOTLOADER_ACK
        token = self.profile.ack_token
        session.ack_deadline = self.clock.monotonic() + self.profile.ack_timeout

        poll = poll_for(
            self._read_reply,
            lambda text: token in text,
            timeout=self.profile.ack_timeout,
            interval=self.profile.poll_interval,
            clock=self.clock,
        )
        if poll.matched:
            logger.info(f"Bootloader reported completion: {token}")
        else:
            logger.warning(
                f"Timed out waiting for bootloader completion ({token}). "
                "Proceeding to ID check anyway..."
            )
        return poll.matched

    def query_identity(self, session: FlashSession) -> str:
        """Send the identity query and collect a reply line."""
        session.state = FlashState.VERIFYING
        try:
            self._send(id_command(session.address))
        except TransportError as e:
            logger.warning(f"Failed to send ID query: {e}")
            return ""
        session.verify_deadline = self.clock.monotonic() + self.profile.verify_timeout

        poll = poll_for(
            self._read_reply,
            has_reply_line,
            timeout=self.profile.verify_timeout,
            interval=self.profile.poll_interval,
            clock=self.clock,
        )
        logger.info(f"ID response: {poll.text.strip()!r}")
        return poll.text

    def verify(self, session: FlashSession, result: FlashResult) -> None:
        """Query identity and record the comparison in ``result``."""
        reply = self.query_identity(session)
        outcome, board, version, mismatched = evaluate_identity(
            reply,
            self.profile.id_prefix,
            session.board_type,
            session.version,
            major_zeros=self.profile.strip_major_zeros,
        )
        result.id_response = reply
        result.outcome = outcome
        result.reported_board = board
        result.reported_version = version
        result.mismatched_fields = mismatched

        prefix = self.profile.id_prefix
        problems = []
        if outcome is VerificationOutcome.VERIFIED:
            logger.info(
                f"Firmware update verified: board {session.board_type} "
                f"reports version {session.version}"
            )
        elif outcome is VerificationOutcome.MISMATCH:
            if "board" in mismatched:
                problems.append(
                    f"ID board mismatch. Expected '{session.board_type}', got '{board}'"
                )
            if "version" in mismatched:
                problems.append(
                    f"Firmware version mismatch. Expected '{session.version}', got '{version}'"
                )
        elif outcome is VerificationOutcome.UNPARSEABLE:
            problems.append(
                f"No parseable '{prefix}' line in response; cannot verify flashed "
                f"version {session.version} for board {session.board_type}"
            )
        else:
            problems.append(
                f"No ID response within {self.profile.verify_timeout:g}s; cannot verify "
                f"flashed version {session.version} for board {session.board_type}"
            )

        for message in problems:
            logger.warning(message)
            result.add_warning(message)

    def flash(
        self,
        board_type: str,
        version: str,
        path: str,
        address: Optional[str] = None,
        progress_cb: Optional[Callable[[int, int], None]] = None,
    ) -> FlashResult:
        """
        Complete flash workflow: select, stream, await ack, verify.

        Args:
            board_type: Board model the image targets (expected in the ID reply)
            version: Canonical version being flashed (expected in the ID reply)
            path: Firmware file to stream
            address: EXP bus address; None on NET
            progress_cb: Optional callback(bytes_sent, total_bytes)

        Returns:
            FlashResult; verification problems are reported, not raised.

        Raises:
            ChannelBusy: If a flash is already running on this channel
            TargetSelectError: If the address select command cannot be sent
            FirmwareStreamError: If streaming fails
        """
        if self._active:
            raise ChannelBusy("A flash is already in progress on this channel")
        self._active = True
        try:
            session = FlashSession(
                board_type=board_type,
                version=version,
                path=path,
                address=address,
            )
            self.select(session)
            self.stream(session, progress_cb)

            result = FlashResult(
                protocol=self.profile.protocol.value,
                board_type=board_type,
                version=version,
                path=path,
                address=address,
                total_bytes=session.total_bytes,
                bytes_sent=session.bytes_sent,
            )
            result.bootloader_acked = self.await_bootloader(session)
            if not result.bootloader_acked:
                result.add_warning(
                    f"Bootloader completion token {self.profile.ack_token} not seen "
                    f"within {self.profile.ack_timeout:g}s"
                )
            self.verify(session, result)
            session.state = FlashState.DONE
            return result
        finally:
            self._active = False
