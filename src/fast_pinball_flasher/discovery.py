"""
Serial port discovery.

Probes every serial port with ``ID:`` and classifies the ones that answer
as NET or EXP. Missing or silent hardware is normal, so nothing here raises
for an unresponsive port.
"""

import logging
from typing import Callable, Dict, List, Optional

import serial.tools.list_ports

from fast_pinball_flasher.models import ProtocolKind
from fast_pinball_flasher.protocol.responses import parse_protocol
from fast_pinball_flasher.protocol.timing import SYSTEM_CLOCK, Clock
from fast_pinball_flasher.protocol.transport import (
    PROBE_READ_TIMEOUT,
    ByteChannel,
    SerialTransport,
    TransportError,
)

logger = logging.getLogger(__name__)

PROBE_COMMAND = b"ID:\r"
PROBE_REPLY_DELAY = 0.005
PROBE_MAX_BYTES = 256


def list_port_names() -> List[str]:
    """Device names of all serial ports the platform reports."""
    return [port.device for port in serial.tools.list_ports.comports()]


def open_probe_port(port: str) -> ByteChannel:
    """Open a port with the FAST line configuration and probe read timeout."""
    return SerialTransport(port, timeout=PROBE_READ_TIMEOUT).open()


class PortDiscovery:
    """
    Classify serial ports by the protocol they answer with.

    Example:
        ports = PortDiscovery().discover()
        # {"/dev/ttyACM0": ProtocolKind.NET, "/dev/ttyACM1": ProtocolKind.EXP}
    """

    def __init__(
        self,
        list_ports: Callable[[], List[str]] = list_port_names,
        opener: Callable[[str], ByteChannel] = open_probe_port,
        clock: Clock = SYSTEM_CLOCK,
    ):
        self.list_ports = list_ports
        self.opener = opener
        self.clock = clock

    def probe(self, port: str) -> Optional[ProtocolKind]:
        """
        Send the identity command to one port and classify the reply.

        Returns:
            ProtocolKind, or None if the port could not be opened or did not
            answer with a recognizable ``ID:`` reply.
        """
        try:
            channel = self.opener(port)
        except TransportError as e:
            logger.debug(f"Skipping {port}: {e}")
            return None

        try:
            channel.write(PROBE_COMMAND)
            channel.flush()
            self.clock.sleep(PROBE_REPLY_DELAY)

            collected = b""
            while len(collected) < PROBE_MAX_BYTES:
                chunk = channel.read(PROBE_MAX_BYTES - len(collected))
                if not chunk:
                    break
                collected += chunk
        except TransportError as e:
            logger.debug(f"Probe of {port} failed: {e}")
            return None
        finally:
            channel.close()

        if not collected:
            logger.debug(f"No reply from {port}")
            return None

        text = collected.decode("utf-8", errors="replace").strip()
        protocol = parse_protocol(text)
        if protocol is None:
            logger.debug(f"Unrecognized reply from {port}: {text!r}")
        else:
            logger.info(f"Found {protocol.value} on {port}")
        return protocol

    def discover(self) -> Dict[str, ProtocolKind]:
        """Probe every listed port; return all that classified."""
        results: Dict[str, ProtocolKind] = {}
        for port in self.list_ports():
            protocol = self.probe(port)
            if protocol is not None:
                results[port] = protocol
        return results


def first_ports(discovered: Dict[str, ProtocolKind]) -> Dict[ProtocolKind, str]:
    """Keep the first responsive port of each protocol, in discovery order."""
    chosen: Dict[ProtocolKind, str] = {}
    for port, protocol in discovered.items():
        chosen.setdefault(protocol, port)
    return chosen
