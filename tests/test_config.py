"""Tests for configuration models and the JSON loader."""

import json

import pytest
from pydantic import ValidationError

from onstep_drivers.config.loader import (
    ConfigurationError,
    create_example_config,
    load_config,
    save_config,
)
from onstep_drivers.config.models import AppConfig, LoggingConfig, SimulatorConfig


def test_missing_file_creates_defaults(tmp_path):
    path = tmp_path / "config.json"

    config = load_config(str(path))

    assert config == AppConfig()
    assert path.exists()
    data = json.loads(path.read_text())
    assert "_comment" in data
    # The generated file loads back cleanly
    assert load_config(str(path)) == AppConfig()


def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "config.json"
    config = AppConfig()
    config.driver.device = "ocs"
    config.connection.kind = "network"
    config.connection.host = "10.0.0.5"
    config.simulator.has_dome = True

    save_config(config, str(path))
    loaded = load_config(str(path))

    assert loaded.driver.device == "ocs"
    assert loaded.connection.kind == "network"
    assert loaded.connection.host == "10.0.0.5"
    assert loaded.simulator.has_dome


def test_invalid_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_config(str(path))


def test_validation_errors_are_reported(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"driver": {"device": "lx200"}}))
    with pytest.raises(ConfigurationError) as exc_info:
        load_config(str(path))
    assert "driver -> device" in str(exc_info.value)


def test_unknown_section_rejected(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"focuser": {}}))
    with pytest.raises(ConfigurationError):
        load_config(str(path))


def test_example_config(tmp_path):
    path = tmp_path / "config.example.json"
    create_example_config(str(path))
    assert json.loads(path.read_text())["driver"]["device"] == "onstep_aux"


def test_logging_level_normalized():
    assert LoggingConfig(level="debug").level == "DEBUG"
    with pytest.raises(ValidationError):
        LoggingConfig(level="chatty")


def test_simulator_validation():
    with pytest.raises(ValidationError):
        SimulatorConfig(features="1100")
    with pytest.raises(ValidationError):
        SimulatorConfig(features="11002001")
    with pytest.raises(ValidationError):
        SimulatorConfig(weather=["wind"])
    assert SimulatorConfig(weather=["dew_point"]).weather == ["dew_point"]
