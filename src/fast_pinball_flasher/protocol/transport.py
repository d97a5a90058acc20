"""
FAST Serial Transport Layer

Handles low-level serial communication with FAST Pinball boards.

This module provides:
- The duplex byte channel interface the protocol channels are written against
- Serial port initialization with the fixed FAST line configuration
- Raw write/flush/read operations with short read timeouts
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

try:
    import serial
except ImportError:
    raise ImportError("PySerial required: pip install pyserial")

logger = logging.getLogger(__name__)

BAUD_RATE = 921_600
READ_CHUNK = 256

# Per-read timeouts (seconds)
EXP_READ_TIMEOUT = 0.005
NET_READ_TIMEOUT = 0.2
PROBE_READ_TIMEOUT = 0.005


class TransportError(Exception):
    """Base exception for transport layer errors"""
    pass


class PortUnavailable(TransportError):
    """Serial port could not be opened"""
    pass


class ByteChannel(ABC):
    """
    Duplex byte channel over an opened endpoint.

    Implementations:
    - SerialTransport: pyserial, for real hardware
    - In-memory fakes in the test suite
    """

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write all of ``data``."""

    @abstractmethod
    def flush(self) -> None:
        """Block until written data has left the output buffer."""

    @abstractmethod
    def read(self, max_bytes: int = READ_CHUNK) -> bytes:
        """Read up to ``max_bytes``; returns b'' if nothing arrived within the timeout."""

    @abstractmethod
    def close(self) -> None:
        """Release the endpoint."""

    def read_text(self, max_bytes: int = READ_CHUNK) -> str:
        """Read and decode, replacing undecodable bytes."""
        return self.read(max_bytes).decode("utf-8", errors="replace")

    def drain(self) -> str:
        """Read and discard whatever is pending (one read). A failed read discards nothing."""
        try:
            junk = self.read_text()
        except TransportError as e:
            logger.debug(f"Drain failed: {e}")
            return ""
        if junk:
            logger.debug(f"Drained {len(junk)} chars of pending input")
        return junk


class SerialTransport(ByteChannel):
    """
    Serial endpoint for a FAST bus.

    Line configuration is fixed: 921600 baud, 8N1, no flow control, DTR
    asserted on open. Only the read timeout varies per bus.

    Example:
        transport = SerialTransport(port="/dev/ttyACM0")
        transport.open()
        transport.write(b"ID:\\r")
        reply = transport.read_text()
        transport.close()
    """

    def __init__(
        self,
        port: str,
        timeout: float = EXP_READ_TIMEOUT,
        baudrate: int = BAUD_RATE,
    ):
        """
        Initialize transport.

        Args:
            port: Serial port (e.g., "/dev/ttyACM0", "COM3")
            timeout: Per-read timeout in seconds
            baudrate: Serial baud rate (default 921600)
        """
        self.port = port
        self.timeout = timeout
        self.baudrate = baudrate
        self.ser: Optional[serial.Serial] = None

    def open(self) -> "SerialTransport":
        """
        Open serial port with the FAST line configuration.

        Raises:
            PortUnavailable: If port cannot be opened
        """
        try:
            ser = serial.Serial()
            ser.port = self.port
            ser.baudrate = self.baudrate
            ser.bytesize = serial.EIGHTBITS
            ser.parity = serial.PARITY_NONE
            ser.stopbits = serial.STOPBITS_ONE
            ser.rtscts = False
            ser.xonxoff = False
            ser.timeout = self.timeout
            ser.write_timeout = 1.0
            # Assert DTR as the port opens
            ser.dtr = True
            ser.open()
            self.ser = ser
            logger.debug(f"Opened {self.port} at {self.baudrate} bps (timeout={self.timeout}s)")
        except (serial.SerialException, OSError) as e:
            raise PortUnavailable(f"Cannot open port {self.port}: {e}")
        return self

    def close(self) -> None:
        """Close serial port."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.port}")

    def __enter__(self) -> "SerialTransport":
        if self.ser is None or not self.ser.is_open:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> "serial.Serial":
        if not self.ser or not self.ser.is_open:
            raise TransportError("Serial port not open")
        return self.ser

    def write(self, data: bytes) -> None:
        """
        Send raw bytes.

        Raises:
            TransportError: If write fails or is incomplete
        """
        ser = self._require_open()
        try:
            written = ser.write(data)
        except serial.SerialException as e:
            raise TransportError(f"Write error on {self.port}: {e}")
        if written is not None and written != len(data):
            raise TransportError(f"Incomplete write: sent {written}/{len(data)} bytes")
        logger.debug(f">>> {data[:32]!r}" + ("..." if len(data) > 32 else ""))

    def flush(self) -> None:
        ser = self._require_open()
        try:
            ser.flush()
        except serial.SerialException as e:
            raise TransportError(f"Flush error on {self.port}: {e}")

    def read(self, max_bytes: int = READ_CHUNK) -> bytes:
        """
        Read whatever arrives within the port timeout.

        Returns:
            Up to ``max_bytes`` bytes; b'' on timeout.

        Raises:
            TransportError: If the read fails
        """
        ser = self._require_open()
        try:
            data = ser.read(max_bytes)
        except serial.SerialException as e:
            raise TransportError(f"Read error on {self.port}: {e}")
        if data:
            logger.debug(f"<<< {data!r}")
        return data
