"""Tests for the pyserial transport, using pyserial's loop:// URL."""

import pytest

from onstep_drivers.protocol.engine import CommandEngine
from onstep_drivers.protocol.interface import TransportKind
from onstep_drivers.protocol.lexicon import ResponseKind
from onstep_drivers.protocol.transport import PySerialTransport
from onstep_drivers.utils.exceptions import PortNotFoundError


@pytest.fixture
def loop():
    transport = PySerialTransport("loop://", TransportKind.SERIAL)
    transport.open()
    yield transport
    transport.close()


def test_loopback_read_until(loop):
    loop.write(b":GVP#:GVN#")
    assert loop.read_until(b"#", 64, 0.1) == b":GVP#"
    assert loop.read_until(b"#", 64, 0.1) == b":GVN#"


def test_read_times_out_empty(loop):
    assert loop.read(1, 0.01) == b""


def test_reset_input_buffer(loop):
    loop.write(b"stale#")
    loop.reset_input_buffer()
    assert loop.read_until(b"#", 64, 0.01) == b""


def test_close(loop):
    assert loop.is_open()
    loop.close()
    assert not loop.is_open()
    with pytest.raises(OSError):
        loop.write(b":GVP#")


def test_engine_over_loopback(loop, protocol_logger):
    """The loopback echoes the command, which frames as an opaque reply."""
    engine = CommandEngine(loop, protocol_logger=protocol_logger)
    outcome = engine.query(":GVP#", ResponseKind.OPAQUE)
    assert outcome.ok
    assert outcome.payload == ":GVP"


def test_missing_port():
    transport = PySerialTransport.for_serial("/dev/onstep-does-not-exist")
    with pytest.raises(PortNotFoundError):
        transport.open()
    assert not transport.is_open()
