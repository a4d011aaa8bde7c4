"""Tests for the OnStep Aux driver against the simulator."""

import threading
import time

import pytest

from onstep_drivers.config.models import SimulatorConfig
from onstep_drivers.drivers.onstep_aux import AuxState, OnStepAuxDriver
from onstep_drivers.protocol.engine import OutcomeStatus
from onstep_drivers.protocol.lexicon import ResponseKind
from onstep_drivers.simulator.mock_device import MockDevice
from onstep_drivers.utils.exceptions import HandshakeError, InvalidValueError, ProtocolError


def test_connect_discovers_aux(aux_driver):
    caps = aux_driver.capabilities
    assert caps.product == "On-Step"
    assert caps.firmware_version == "10.26g"
    assert caps.focuser_count == 1
    assert caps.has_rotator
    assert aux_driver.rotator_active


def test_update_focuser(aux_driver):
    state = aux_driver.update_focuser()

    assert state.position == 25000
    assert state.moving is False
    assert state.min_position == 0
    assert state.max_position == 50000
    assert state.temperature == 21.4
    assert state.diff_temperature == -0.3
    assert state.tc_coefficient == 0.0
    assert state.tc_deadband == 10
    assert state.tc_enabled is False


def test_move_focuser_absolute(aux_driver, aux_device):
    assert aux_driver.move_focuser_absolute(26000)
    assert aux_device.commands_received[-1] == ":FS026000#"
    assert aux_driver.update_focuser().moving is True

    assert aux_driver.abort_focuser()
    assert aux_driver.update_focuser().moving is False


def test_move_focuser_checks_known_limits(aux_driver):
    with pytest.raises(InvalidValueError):
        aux_driver.move_focuser_absolute(-1)

    aux_driver.update_focuser()
    with pytest.raises(InvalidValueError):
        aux_driver.move_focuser_absolute(60000)


def test_move_focuser_rejected_by_controller(aux_driver, aux_device):
    aux_device.script_reply(":FS001000#", "0")
    assert aux_driver.move_focuser_absolute(1000) is False


def test_move_focuser_relative(aux_driver, aux_device):
    assert aux_driver.move_focuser_relative(-500)
    assert aux_device.commands_received[-1] == ":FR-500#"
    time.sleep(0.5)
    assert aux_device.focuser_position == 24500


def test_temperature_coefficient(aux_driver, aux_device):
    assert aux_driver.set_temperature_coefficient(1.5)
    assert aux_device.commands_received[-1] == ":FC+1.50000#"
    assert aux_driver.update_focuser().tc_coefficient == 1.5


@pytest.mark.parametrize("value", [1000.0, -1000.0, 2500.0])
def test_temperature_coefficient_limit(aux_driver, value):
    with pytest.raises(InvalidValueError):
        aux_driver.set_temperature_coefficient(value)


def test_deadband(aux_driver):
    assert aux_driver.set_deadband(20)
    assert aux_driver.update_focuser().tc_deadband == 20

    with pytest.raises(InvalidValueError):
        aux_driver.set_deadband(0)
    with pytest.raises(InvalidValueError):
        aux_driver.set_deadband(32768)


def test_update_rotator(aux_driver):
    state = aux_driver.update_rotator()

    assert state.angle == 0.0
    assert state.min_angle == 0.0
    assert state.max_angle == 360.0
    assert state.moving is False
    assert state.backlash == 0


def test_move_rotator(aux_driver, aux_device):
    aux_driver.update_rotator()
    assert aux_driver.move_rotator(45.5)
    assert aux_device.commands_received[-1] == ":rS045:30:00#"

    with pytest.raises(InvalidValueError):
        aux_driver.move_rotator(400)


def test_home_and_abort_rotator(aux_driver, aux_device):
    assert aux_driver.home_rotator()
    assert aux_device.commands_received[-1] == ":rC#"
    assert aux_driver.abort_rotator()
    assert aux_device.commands_received[-1] == ":rQ#"


def test_rotator_backlash(aux_driver):
    assert aux_driver.set_rotator_backlash(5)
    assert aux_driver.update_rotator().backlash == 5

    with pytest.raises(InvalidValueError):
        aux_driver.set_rotator_backlash(-1)


def test_rotator_zero_reply_disables_polling(aux_driver, aux_device):
    aux_device.script_reply(":rG#", "0#")

    assert aux_driver.update_rotator() is None
    assert not aux_driver.rotator_active

    before = len(aux_device.commands_received)
    assert aux_driver.update_rotator() is None
    assert len(aux_device.commands_received) == before


def test_no_rotator(protocol_logger):
    device = MockDevice(SimulatorConfig(enabled=True, rotator="none"), device="onstep_aux")
    driver = OnStepAuxDriver(device, protocol_logger=protocol_logger)
    driver.connect()
    try:
        assert not driver.capabilities.has_rotator
        assert driver.update_rotator() is None
    finally:
        driver.disconnect()


def test_no_focuser(protocol_logger):
    device = MockDevice(SimulatorConfig(enabled=True, focusers=0), device="onstep_aux")
    driver = OnStepAuxDriver(device, protocol_logger=protocol_logger)
    driver.connect()
    try:
        assert not driver.capabilities.has_focuser
        assert driver.update_focuser() is None
    finally:
        driver.disconnect()


def test_update_weather(aux_driver):
    readings = aux_driver.update_weather()
    assert set(readings) == {"temperature", "pressure", "humidity"}
    assert readings["humidity"] == pytest.approx(65.0, abs=0.2)


def test_send_raw(aux_driver):
    outcome = aux_driver.send_raw(":GVP#")
    assert outcome.payload == "On-Step"

    outcome = aux_driver.send_raw(":FG#", ResponseKind.INTEGER)
    assert outcome.value == 25000

    with pytest.raises(ProtocolError):
        aux_driver.send_raw("GVP")


def test_unknown_raw_command_answers_zero(aux_driver):
    """The lone unterminated '0' reads as a status character, not as text."""
    outcome = aux_driver.send_raw(":XYZ#", ResponseKind.SINGLE_CHAR)
    assert outcome.status is OutcomeStatus.OK
    assert outcome.payload == "0"
    assert not outcome.has_reply

    assert aux_driver.send_raw(":XYZ#").status is OutcomeStatus.TIMEOUT


def test_poll(aux_driver):
    state = aux_driver.poll()

    assert isinstance(state, AuxState)
    assert aux_driver.last_state is state
    assert state.focuser.position == 25000
    assert state.rotator.angle == 0.0
    assert "pressure" in state.weather
    assert not aux_driver.engine.guard.busy
    assert state.to_dict()["focuser"]["max_position"] == 50000


def test_concurrent_poll_and_commands(aux_driver):
    """Polls and commands from several threads each see consistent replies."""
    errors = []

    def poller():
        for _ in range(5):
            state = aux_driver.poll()
            if state.focuser.max_position != 50000 or state.rotator.max_angle != 360.0:
                errors.append(state)

    def commander():
        for _ in range(10):
            if aux_driver.send_raw(":GVP#").payload != "On-Step":
                errors.append("handshake")

    threads = [threading.Thread(target=poller), threading.Thread(target=commander)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert not aux_driver.engine.guard.busy


def test_background_polling(aux_driver):
    aux_driver.start_polling(0.05)
    try:
        assert aux_driver.polling
        time.sleep(0.5)
        assert isinstance(aux_driver.last_state, AuxState)
    finally:
        aux_driver.stop_polling()
    assert not aux_driver.polling


def test_polling_disabled_with_zero_interval(aux_driver):
    aux_driver.start_polling(0)
    assert not aux_driver.polling


def test_silent_controller_fails_handshake(protocol_logger):
    device = MockDevice(SimulatorConfig(enabled=True, inject_timeout=True), device="onstep_aux")
    driver = OnStepAuxDriver(device, protocol_logger=protocol_logger)

    with pytest.raises(HandshakeError):
        driver.connect()
    assert not driver.connected


def test_slow_controller_times_out(aux_driver, aux_device):
    """A reply slower than the serial profile is a timeout, and the late bytes are flushed."""
    aux_device.config.response_latency_ms = 400
    outcome = aux_driver.send_raw(":GVP#")
    assert outcome.status is OutcomeStatus.TIMEOUT

    aux_device.config.response_latency_ms = 0
    assert aux_driver.send_raw(":FG#", ResponseKind.INTEGER).value == 25000
