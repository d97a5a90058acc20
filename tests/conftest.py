"""Shared fakes: an in-memory byte channel, a simulated clock, a firmware tree."""

from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from fast_pinball_flasher.protocol.transport import ByteChannel, TransportError


class FakeClock:
    """Clock whose time only advances when something sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeChannel(ByteChannel):
    """
    In-memory duplex channel.

    ``responder`` is called with every written chunk and may return bytes
    that become readable. Reads return everything pending, up to max_bytes.
    """

    def __init__(
        self,
        responder: Optional[Callable[[bytes], Optional[bytes]]] = None,
        fail_write_on: Optional[Callable[[bytes], bool]] = None,
    ) -> None:
        self.responder = responder
        self.fail_write_on = fail_write_on
        self.rx = bytearray()
        self.written: List[bytes] = []
        self.closed = False

    def feed(self, data: bytes) -> None:
        self.rx += data

    def write(self, data: bytes) -> None:
        if self.fail_write_on and self.fail_write_on(data):
            raise TransportError("simulated write failure")
        self.written.append(bytes(data))
        if self.responder:
            reply = self.responder(bytes(data))
            if reply:
                self.rx += reply

    def flush(self) -> None:
        pass

    def read(self, max_bytes: int = 256) -> bytes:
        chunk = bytes(self.rx[:max_bytes])
        del self.rx[:max_bytes]
        return chunk

    def close(self) -> None:
        self.closed = True


class ScriptedChannel(FakeChannel):
    """
    FakeChannel whose reads follow a script.

    Each read takes the next scripted item: bytes are returned as-is and an
    exception is raised. Once the script runs out, reads return whatever the
    responder produced.
    """

    def __init__(self, reads: List[object], responder=None, fail_write_on=None) -> None:
        super().__init__(responder, fail_write_on)
        self.reads = list(reads)

    def read(self, max_bytes: int = 256) -> bytes:
        if self.reads:
            item = self.reads.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return super().read(max_bytes)


class DeadReadChannel(FakeChannel):
    """Accepts every write; every read fails."""

    def read(self, max_bytes: int = 256) -> bytes:
        raise TransportError("simulated read failure")


def command_responder(replies: Dict[bytes, bytes], default: bytes = b"") -> Callable[[bytes], bytes]:
    """Answer exact commands from a table; everything else gets ``default``."""
    return lambda data: replies.get(data, default)


FIRMWARE_IMAGE = b":10000000AA\r:10001000BB\r:END\r"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def firmware_tree(tmp_path) -> Path:
    """Firmware tree with EXP and NET images laid out like the archive."""
    base = tmp_path / "firmware"
    exp = base / "EXP"
    net = base / "NET"
    exp.mkdir(parents=True)
    net.mkdir(parents=True)
    (exp / "FP-EXP-0091_EXP_firmware_v_0_48.txt").write_bytes(FIRMWARE_IMAGE)
    (exp / "FP-EXP-0091_EXP_firmware_v_0_50.txt").write_bytes(FIRMWARE_IMAGE)
    (exp / "FP-EXP-0071_EXP_firmware_v_0_9.txt").write_bytes(FIRMWARE_IMAGE)
    (net / "FP-CPU-2000_NET_firmware_v_2_28.txt").write_bytes(FIRMWARE_IMAGE)
    (net / "FP-CPU-2000_NET_firmware_v_2_6.txt").write_bytes(FIRMWARE_IMAGE)
    return base
