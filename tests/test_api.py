"""Tests for the HTTP control API using FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from onstep_drivers.api.app import create_app
from onstep_drivers.api.error_mapper import (
    ERROR_DRIVER_ERROR,
    ERROR_INVALID_VALUE,
    ERROR_NOT_CONNECTED,
    ERROR_NOT_IMPLEMENTED,
    map_exception,
)
from onstep_drivers.config.models import AppConfig
from onstep_drivers.drivers.ocs import OCSDriver
from onstep_drivers.drivers.onstep_aux import OnStepAuxDriver
from onstep_drivers.simulator.mock_device import MockDevice
from onstep_drivers.utils.exceptions import HandshakeError, NotConnectedError


def _config(device):
    config = AppConfig()
    config.simulator.enabled = True
    config.driver.device = device
    config.driver.polling_interval_sec = 0
    config.logging.file = None
    return config


@pytest.fixture
def aux_client(protocol_logger):
    config = _config("onstep_aux")
    driver = OnStepAuxDriver(MockDevice(config.simulator, device="onstep_aux"), protocol_logger=protocol_logger)
    with TestClient(create_app(config, driver)) as client:
        yield client
    driver.disconnect()


@pytest.fixture
def ocs_client(protocol_logger):
    config = _config("ocs")
    driver = OCSDriver(MockDevice(config.simulator, device="ocs"), protocol_logger=protocol_logger)
    with TestClient(create_app(config, driver)) as client:
        yield client
    driver.disconnect()


def test_health(aux_client):
    response = aux_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_status_before_connect(aux_client):
    body = aux_client.get("/api/v1/status").json()
    assert body["ErrorNumber"] == 0
    assert body["Value"]["connected"] is False
    assert body["Value"]["device"] == "OnStep Aux"
    assert body["Value"]["capabilities"]["product"] == ""


def test_poll_requires_connection(aux_client):
    body = aux_client.get("/api/v1/poll").json()
    assert body["ErrorNumber"] == ERROR_NOT_CONNECTED
    assert body["Value"] is None


def test_connect_and_status(aux_client):
    body = aux_client.put("/api/v1/connect").json()
    assert body["ErrorNumber"] == 0
    assert body["Value"]["product"] == "On-Step"

    status = aux_client.get("/api/v1/status").json()["Value"]
    assert status["connected"] is True
    assert status["transport"] == "serial"
    assert status["timeout_profile"] == "0.100s"
    assert status["capabilities"]["focuser_count"] == 1
    assert status["polling"] is False


def test_server_transaction_ids_increase(aux_client):
    first = aux_client.get("/api/v1/status").json()["ServerTransactionID"]
    second = aux_client.get("/api/v1/status").json()["ServerTransactionID"]
    assert second > first


def test_poll_and_state(aux_client):
    aux_client.put("/api/v1/connect")
    assert aux_client.get("/api/v1/state").json()["Value"] is None

    body = aux_client.get("/api/v1/poll").json()
    assert body["ErrorNumber"] == 0
    assert body["Value"]["focuser"]["position"] == 25000

    state = aux_client.get("/api/v1/state").json()["Value"]
    assert state["focuser"]["position"] == 25000


def test_raw_command(aux_client):
    aux_client.put("/api/v1/connect")

    body = aux_client.put("/api/v1/command", json={"command": ":GVP#"}).json()
    assert body["Value"]["status"] == "OK"
    assert body["Value"]["payload"] == "On-Step"

    body = aux_client.put("/api/v1/command", json={"command": ":FG#", "kind": "integer"}).json()
    assert body["Value"]["value"] == 25000


def test_malformed_raw_command(aux_client):
    aux_client.put("/api/v1/connect")
    body = aux_client.put("/api/v1/command", json={"command": "GVP"}).json()
    assert body["ErrorNumber"] == ERROR_INVALID_VALUE


def test_protocol_log(aux_client):
    aux_client.put("/api/v1/connect")

    body = aux_client.get("/api/v1/protocol/log", params={"limit": 5}).json()
    assert len(body["Value"]["messages"]) == 5
    assert body["Value"]["stats"]["tx_count"] > 0

    aux_client.delete("/api/v1/protocol/log")
    body = aux_client.get("/api/v1/protocol/log").json()
    assert body["Value"]["messages"] == []
    assert body["Value"]["stats"]["total_messages"] == 0


def test_focuser_move(aux_client):
    aux_client.put("/api/v1/connect")

    body = aux_client.put("/api/v1/focuser/move", json={"position": 26000}).json()
    assert body["ErrorNumber"] == 0
    assert body["Value"] is True

    body = aux_client.put("/api/v1/focuser/move", json={"steps": -100}).json()
    assert body["Value"] is True


def test_focuser_move_invalid(aux_client):
    aux_client.put("/api/v1/connect")

    assert aux_client.put("/api/v1/focuser/move", json={"position": -5}).json()["ErrorNumber"] == ERROR_INVALID_VALUE
    assert aux_client.put("/api/v1/focuser/move", json={}).json()["ErrorNumber"] == ERROR_INVALID_VALUE


def test_roof_not_available_on_aux(aux_client):
    aux_client.put("/api/v1/connect")
    body = aux_client.put("/api/v1/roof/open").json()
    assert body["ErrorNumber"] == ERROR_NOT_IMPLEMENTED


def test_roof_actions(ocs_client):
    ocs_client.put("/api/v1/connect")

    body = ocs_client.put("/api/v1/roof/open").json()
    assert body["ErrorNumber"] == 0
    assert body["Value"] is True

    state = ocs_client.get("/api/v1/poll").json()["Value"]
    assert state["roof"]["state"] == "opening"

    assert ocs_client.put("/api/v1/roof/stop").json()["Value"] is True
    assert ocs_client.put("/api/v1/roof/sideways").json()["ErrorNumber"] == ERROR_INVALID_VALUE


def test_focuser_not_available_on_ocs(ocs_client):
    ocs_client.put("/api/v1/connect")
    body = ocs_client.put("/api/v1/focuser/move", json={"position": 10}).json()
    assert body["ErrorNumber"] == ERROR_NOT_IMPLEMENTED


def test_disconnect(aux_client):
    aux_client.put("/api/v1/connect")
    assert aux_client.put("/api/v1/disconnect").json()["ErrorNumber"] == 0
    assert aux_client.get("/api/v1/status").json()["Value"]["connected"] is False


def test_error_mapping():
    assert map_exception(NotConnectedError("x")) == (ERROR_NOT_CONNECTED, "x")
    assert map_exception(HandshakeError("bad")) == (ERROR_DRIVER_ERROR, "bad")
    number, message = map_exception(KeyError("k"))
    assert number == ERROR_DRIVER_ERROR
    assert message.startswith("Internal error: KeyError")
