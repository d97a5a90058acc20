"""Tests for serial port discovery."""

from conftest import FakeChannel, command_responder
from fast_pinball_flasher.discovery import PROBE_COMMAND, PortDiscovery, first_ports
from fast_pinball_flasher.models import ProtocolKind
from fast_pinball_flasher.protocol.transport import PortUnavailable, TransportError


class FakePorts:
    """Opener that hands out scripted channels per port name."""

    def __init__(self, replies):
        self.replies = replies
        self.opened = []

    def names(self):
        return list(self.replies)

    def open(self, port):
        reply = self.replies[port]
        if isinstance(reply, Exception):
            raise reply
        channel = FakeChannel(command_responder({PROBE_COMMAND: reply}))
        self.opened.append(channel)
        return channel


def _discovery(replies, clock):
    ports = FakePorts(replies)
    return ports, PortDiscovery(list_ports=ports.names, opener=ports.open, clock=clock)


class TestDiscover:

    def test_classifies_net_and_exp(self, clock):
        _, discovery = _discovery({
            "/dev/ttyACM0": b"ID:NET FP-CPU-2000 02.28\r",
            "/dev/ttyACM1": b"ID:EXP FP-EXP-0091 0.48\r",
        }, clock)
        assert discovery.discover() == {
            "/dev/ttyACM0": ProtocolKind.NET,
            "/dev/ttyACM1": ProtocolKind.EXP,
        }

    def test_silent_and_unknown_ports_absent(self, clock):
        _, discovery = _discovery({
            "/dev/ttyS0": b"",
            "/dev/ttyS1": b"hello\r",
            "/dev/ttyS2": b"ID:XYZ thing 1.0\r",
            "/dev/ttyACM1": b"ID:EXP FP-EXP-0091 0.48\r",
        }, clock)
        assert discovery.discover() == {"/dev/ttyACM1": ProtocolKind.EXP}

    def test_unopenable_port_skipped(self, clock):
        _, discovery = _discovery({
            "/dev/ttyBUSY": PortUnavailable("busy"),
            "/dev/ttyACM0": b"ID:NET FP-CPU-2000 02.28\r",
        }, clock)
        assert discovery.discover() == {"/dev/ttyACM0": ProtocolKind.NET}

    def test_ports_closed_after_identity_query(self, clock):
        ports, discovery = _discovery({
            "/dev/ttyS0": b"",
            "/dev/ttyACM0": b"ID:NET FP-CPU-2000 02.28\r",
        }, clock)
        discovery.discover()
        assert len(ports.opened) == 2
        assert all(channel.closed for channel in ports.opened)
        assert all(channel.written == [PROBE_COMMAND] for channel in ports.opened)

    def test_read_failure_skipped_and_closed(self, clock):
        class BrokenChannel(FakeChannel):
            def read(self, max_bytes=256):
                raise TransportError("device unplugged")

        broken = BrokenChannel()
        discovery = PortDiscovery(
            list_ports=lambda: ["/dev/ttyACM9"],
            opener=lambda port: broken,
            clock=clock,
        )
        assert discovery.discover() == {}
        assert broken.closed

    def test_repeatable(self, clock):
        _, discovery = _discovery({
            "/dev/ttyACM0": b"ID:NET FP-CPU-2000 02.28\r",
            "/dev/ttyACM1": b"ID:EXP FP-EXP-0091 0.48\r",
            "/dev/ttyS0": b"",
        }, clock)
        assert discovery.discover() == discovery.discover()

    def test_waits_before_reading(self, clock):
        _, discovery = _discovery({"/dev/ttyACM0": b"ID:NET FP-CPU-2000 02.28\r"}, clock)
        discovery.discover()
        assert clock.sleeps == [0.005]


def test_first_ports_keeps_first_of_each_kind() -> None:
    """With two ports on the same bus, the first discovered one is used."""
    chosen = first_ports({
        "/dev/ttyACM0": ProtocolKind.NET,
        "/dev/ttyACM1": ProtocolKind.EXP,
        "/dev/ttyACM2": ProtocolKind.EXP,
    })
    assert chosen == {ProtocolKind.NET: "/dev/ttyACM0", ProtocolKind.EXP: "/dev/ttyACM1"}
