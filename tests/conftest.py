"""Shared fixtures: a scripted in-memory transport and simulator-backed drivers."""

import threading

import pytest

from onstep_drivers.config.models import SimulatorConfig
from onstep_drivers.drivers.ocs import OCSDriver
from onstep_drivers.drivers.onstep_aux import OnStepAuxDriver
from onstep_drivers.protocol.interface import Transport, TransportKind
from onstep_drivers.protocol.logger import ProtocolLogger
from onstep_drivers.simulator.mock_device import MockDevice


class ScriptedTransport(Transport):
    """
    Answers each command with a fixed reply.

    Commands with no scripted reply get silence (a timeout). Every call is
    recorded in `calls` as ("write", data), ("read", data) or ("reset", None).
    """

    def __init__(self, replies=None, kind=TransportKind.SERIAL):
        self.replies = dict(replies or {})
        self._kind = kind
        self._open = False
        self._lock = threading.Lock()
        self.buffer = bytearray()
        self.calls = []
        self.fail_write = False
        self.fail_read = False

    @property
    def kind(self):
        return self._kind

    @property
    def description(self):
        return "scripted"

    def open(self):
        self._open = True

    def close(self):
        self._open = False

    def is_open(self):
        return self._open

    @property
    def writes(self):
        return [data for op, data in self.calls if op == "write"]

    def write(self, data):
        if self.fail_write:
            raise OSError("write failed")
        with self._lock:
            self.calls.append(("write", data))
            reply = self.replies.get(data.decode("ascii"))
            if reply is not None:
                self.buffer.extend(reply.encode("ascii") if isinstance(reply, str) else reply)
        return len(data)

    def read(self, size, timeout):
        if self.fail_read:
            raise OSError("read failed")
        with self._lock:
            chunk = bytes(self.buffer[:size])
            del self.buffer[:size]
            self.calls.append(("read", chunk))
        return chunk

    def read_until(self, terminator, size, timeout):
        if self.fail_read:
            raise OSError("read failed")
        with self._lock:
            end = self.buffer.find(terminator)
            count = size if end < 0 else min(end + len(terminator), size)
            chunk = bytes(self.buffer[:count])
            del self.buffer[:count]
            self.calls.append(("read", chunk))
        return chunk

    def reset_input_buffer(self):
        with self._lock:
            self.buffer.clear()
            self.calls.append(("reset", None))


AUX_REPLIES = {
    ":GVP#": "On-Step#",
    ":GVN#": "10.26g#",
    ":FA#": "1#",
    ":rA#": "R#",
    ":GX9A#": "12.5#",
    ":GX9B#": "1013.2#",
    ":GX9C#": "65.0#",
    ":GX9E#": "N/A#",
    ":GXY0#": "10000001#",
    ":GXY1#": "Dew1,3#",
    ":GXY8#": "Power,1#",
}

OCS_REPLIES = {
    ":IP#": "OCS#",
    ":IN#": "3.03i#",
    ":G1#": "8.5#",
    ":Gb#": "N/A#",
    ":Gh#": "70.1#",
    ":DU#": "0#",
    ":IT#": "1.5,3.0#",
    ":GT#": "14.2,48.0#",
}


@pytest.fixture
def scripted():
    """Factory for an open ScriptedTransport."""
    def make(replies=None, kind=TransportKind.SERIAL):
        transport = ScriptedTransport(replies, kind)
        transport.open()
        return transport
    return make


@pytest.fixture
def protocol_logger():
    return ProtocolLogger(max_messages=100)


@pytest.fixture
def sim_config():
    return SimulatorConfig(enabled=True)


@pytest.fixture
def aux_device(sim_config):
    return MockDevice(sim_config, device="onstep_aux")


@pytest.fixture
def aux_driver(aux_device, protocol_logger):
    driver = OnStepAuxDriver(aux_device, protocol_logger=protocol_logger)
    driver.connect()
    yield driver
    driver.disconnect()


@pytest.fixture
def ocs_device(sim_config):
    return MockDevice(sim_config, device="ocs")


@pytest.fixture
def ocs_driver(ocs_device, protocol_logger):
    driver = OCSDriver(ocs_device, protocol_logger=protocol_logger)
    driver.connect()
    yield driver
    driver.disconnect()
