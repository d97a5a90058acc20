"""Tests for the pyserial-backed transport."""

from unittest.mock import MagicMock

import pytest
import serial

from fast_pinball_flasher.protocol import transport
from fast_pinball_flasher.protocol.transport import (
    BAUD_RATE,
    NET_READ_TIMEOUT,
    PortUnavailable,
    SerialTransport,
    TransportError,
)


@pytest.fixture
def fake_serial(monkeypatch):
    port = MagicMock()
    port.is_open = True
    monkeypatch.setattr(transport.serial, "Serial", MagicMock(return_value=port))
    return port


class TestSerialTransport:

    def test_open_applies_line_configuration(self, fake_serial):
        t = SerialTransport("/dev/ttyACM0", timeout=NET_READ_TIMEOUT).open()

        assert fake_serial.port == "/dev/ttyACM0"
        assert fake_serial.baudrate == BAUD_RATE == 921600
        assert fake_serial.bytesize == serial.EIGHTBITS
        assert fake_serial.parity == serial.PARITY_NONE
        assert fake_serial.stopbits == serial.STOPBITS_ONE
        assert fake_serial.timeout == NET_READ_TIMEOUT
        assert fake_serial.dtr is True
        fake_serial.open.assert_called_once()
        assert t.ser is fake_serial

    def test_open_failure(self, fake_serial):
        fake_serial.open.side_effect = serial.SerialException("busy")
        with pytest.raises(PortUnavailable):
            SerialTransport("/dev/ttyACM0").open()

    def test_incomplete_write(self, fake_serial):
        fake_serial.write.return_value = 2
        t = SerialTransport("/dev/ttyACM0").open()
        with pytest.raises(TransportError):
            t.write(b"ID:\r")

    def test_read_error_wrapped(self, fake_serial):
        fake_serial.read.side_effect = serial.SerialException("unplugged")
        t = SerialTransport("/dev/ttyACM0").open()
        with pytest.raises(TransportError):
            t.read()

    def test_read_text_replaces_bad_bytes(self, fake_serial):
        fake_serial.read.return_value = b"ID:EXP \xff"
        t = SerialTransport("/dev/ttyACM0").open()
        assert t.read_text() == "ID:EXP �"

    def test_not_open(self):
        with pytest.raises(TransportError):
            SerialTransport("/dev/ttyACM0").write(b"x")

    def test_context_manager_closes(self, fake_serial):
        with SerialTransport("/dev/ttyACM0") as t:
            t.flush()
        fake_serial.close.assert_called_once()
