"""
OCS (Observatory Control System) driver: roll-off roof or dome, thermostat,
weather and safety/power status.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from onstep_drivers.protocol.framing import parse_float
from onstep_drivers.protocol.lexicon import OCS_LEXICON
from onstep_drivers.drivers.base import BaseDriver
from onstep_drivers.utils.exceptions import InvalidValueError


logger = logging.getLogger(__name__)


class RoofState(Enum):
    OPENING = "opening"
    CLOSING = "closing"
    OPEN = "open"
    CLOSED = "closed"
    IDLE = "idle"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RoofStatus:
    state: RoofState
    detail: str = ""

    def to_dict(self) -> dict:
        return {"state": self.state.value, "detail": self.detail}


def parse_roof_status(payload: str) -> RoofStatus:
    """
    Parse a roof status reply.

    Replies are "o,Travel: n%" (opening), "c,Travel: n%" (closing),
    "i,OPEN", "i,CLOSED", "i,No Error" (idle), or a bare OPEN/CLOSED.
    """
    head, _, rest = payload.partition(",")
    if head == "o":
        return RoofStatus(RoofState.OPENING, rest)
    if head == "c":
        return RoofStatus(RoofState.CLOSING, rest)
    if head == "i":
        if rest == "OPEN":
            return RoofStatus(RoofState.OPEN)
        if rest == "CLOSED":
            return RoofStatus(RoofState.CLOSED)
        return RoofStatus(RoofState.IDLE, rest)
    if payload == "OPEN":
        return RoofStatus(RoofState.OPEN)
    if payload == "CLOSED":
        return RoofStatus(RoofState.CLOSED)
    return RoofStatus(RoofState.UNKNOWN, payload)


class RoofError(Enum):
    """Last roof error reported by the controller."""
    OPEN_SAFETY_INTERLOCK = "RERR_OPEN_SAFETY_INTERLOCK"
    CLOSE_SAFETY_INTERLOCK = "RERR_CLOSE_SAFETY_INTERLOCK"
    OPEN_UNKNOWN = "RERR_OPEN_UNKNOWN"
    OPEN_LIMIT_SW = "RERR_OPEN_LIMIT_SW"
    OPEN_MAX_TIME = "RERR_OPEN_MAX_TIME"
    OPEN_MIN_TIME = "RERR_OPEN_MIN_TIME"
    CLOSE_UNKNOWN = "RERR_CLOSE_UNKNOWN"
    CLOSE_LIMIT_SW = "RERR_CLOSE_LIMIT_SW"
    CLOSE_MAX_TIME = "RERR_CLOSE_MAX_TIME"
    CLOSE_MIN_TIME = "RERR_CLOSE_MIN_TIME"
    LIMIT_SW = "RERR_LIMIT_SW"

    @property
    def description(self) -> str:
        return _ROOF_ERROR_TEXT[self]


_ROOF_ERROR_TEXT = {
    RoofError.OPEN_SAFETY_INTERLOCK: "Open safety interlock",
    RoofError.CLOSE_SAFETY_INTERLOCK: "Close safety interlock",
    RoofError.OPEN_UNKNOWN: "Open unknown",
    RoofError.OPEN_LIMIT_SW: "Open limit switch",
    RoofError.OPEN_MAX_TIME: "Open max time exceeded",
    RoofError.OPEN_MIN_TIME: "Open min time not reached",
    RoofError.CLOSE_UNKNOWN: "Close unknown",
    RoofError.CLOSE_LIMIT_SW: "Close limit switch",
    RoofError.CLOSE_MAX_TIME: "Close max time exceeded",
    RoofError.CLOSE_MIN_TIME: "Close min time not reached",
    RoofError.LIMIT_SW: "Both open & close limit switches active together",
}


@dataclass(frozen=True)
class OCSState:
    """One poll's worth of OCS readings; None where a reading failed."""
    roof: Optional[RoofStatus] = None
    roof_error: Optional[RoofError] = None
    safety: Optional[str] = None
    power: Optional[str] = None
    thermostat_temperature: Optional[str] = None
    thermostat_humidity: Optional[str] = None
    heat_setpoint: Optional[int] = None
    cool_setpoint: Optional[int] = None
    dome_azimuth: Optional[float] = None
    weather: Dict[str, float] = field(default_factory=dict, hash=False)
    timestamp: str = ""

    def to_dict(self) -> dict:
        return {
            "roof": self.roof.to_dict() if self.roof else None,
            "roof_error": self.roof_error.value if self.roof_error else None,
            "safety": self.safety,
            "power": self.power,
            "thermostat_temperature": self.thermostat_temperature,
            "thermostat_humidity": self.thermostat_humidity,
            "heat_setpoint": self.heat_setpoint,
            "cool_setpoint": self.cool_setpoint,
            "dome_azimuth": self.dome_azimuth,
            "weather": dict(self.weather),
            "timestamp": self.timestamp,
        }


class OCSDriver(BaseDriver):
    """
    OCS roof/dome controller.

    Runs without a sequencing guard: every call is a single transaction.
    """

    LEXICON = OCS_LEXICON
    NAME = "OCS"

    SETPOINT_MIN = 0
    SETPOINT_MAX = 40
    # Extra wait after the controller's pre-motion delay before polling again
    POLL_SETTLE_SECONDS = 0.5

    _last_roof_error: Optional[RoofError] = None

    def _on_connected(self) -> None:
        self._last_roof_error = None

    # --- roof ---

    def open_roof(self) -> bool:
        return self._move_roof("roof_open")

    def close_roof(self) -> bool:
        return self._move_roof("roof_close")

    def _move_roof(self, name: str) -> bool:
        sent = self._execute(name).ok
        if sent:
            logger.info(f"Roof {name.split('_')[1]} commanded")
        # Interlock switches settle during the pre-motion delay
        self.defer_polling(self.capabilities.roof_pre_motion + self.POLL_SETTLE_SECONDS)
        return sent

    def stop_roof(self) -> bool:
        logger.info("Roof stop commanded")
        return self._execute("roof_stop").ok

    def get_roof_status(self) -> Optional[RoofStatus]:
        outcome = self._execute("roof_status")
        if not outcome.has_reply:
            logger.warning("Roof status not available, check connection")
            return None
        status = parse_roof_status(outcome.payload)
        logger.debug(f"Roof: {status.state.value} {status.detail}")
        return status

    def get_roof_error(self) -> Optional[RoofError]:
        """
        Read the last roof error.

        Returns:
            RoofError, or None when the roof never errored or the reply is unknown.
        """
        outcome = self._execute("roof_last_error")
        if not outcome.has_reply:
            if not outcome.ok:
                logger.warning("Roof last error not available, will try again")
            return None

        try:
            error = RoofError(outcome.payload)
        except ValueError:
            logger.warning(f"Unknown roof error code: {outcome.payload}")
            return None

        if error is not self._last_roof_error:
            logger.warning(f"Roof/shutter error - {error.description}")
            self._last_roof_error = error
        return error

    # --- thermostat ---

    def get_thermostat(self) -> Optional[Tuple[str, str]]:
        """
        Returns:
            (temperature, humidity) as reported, or None on failure.
        """
        outcome = self._execute("thermostat_status")
        if not outcome.has_reply:
            logger.warning("Thermostat status not available, will try again")
            return None
        temperature, _, humidity = outcome.payload.partition(",")
        return temperature, humidity

    def get_heat_setpoint(self) -> Optional[int]:
        return self._get_setpoint("heat_setpoint")

    def get_cool_setpoint(self) -> Optional[int]:
        return self._get_setpoint("cool_setpoint")

    def _get_setpoint(self, name: str) -> Optional[int]:
        outcome = self._execute(name)
        if not outcome.ok:
            logger.warning(f"Thermostat {name.replace('_', ' ')} not available, will try again")
            return None
        return outcome.value

    def set_heat_setpoint(self, celsius: float) -> bool:
        return self._set_setpoint("set_heat_setpoint", celsius)

    def set_cool_setpoint(self, celsius: float) -> bool:
        return self._set_setpoint("set_cool_setpoint", celsius)

    def _set_setpoint(self, name: str, celsius: float) -> bool:
        """
        Raises:
            InvalidValueError: If the setpoint is outside 0-40 deg C.
        """
        if not self.SETPOINT_MIN <= celsius <= self.SETPOINT_MAX:
            raise InvalidValueError(
                f"Setpoint {celsius} out of range [{self.SETPOINT_MIN}, {self.SETPOINT_MAX}]"
            )
        outcome = self._execute(name, celsius)
        success = outcome.ok and outcome.payload == "1"
        if success:
            logger.info(f"Thermostat {name[4:].replace('_', ' ')} set to {celsius:.0f} deg C")
        else:
            logger.warning(f"Failed to set thermostat {name[4:].replace('_', ' ')}")
        return success

    # --- dome ---

    def get_dome_azimuth(self) -> Optional[float]:
        outcome = self._execute("dome_azimuth")
        return outcome.value if outcome.ok else None

    def stop_dome(self) -> bool:
        return self._execute("dome_stop").ok

    def park_dome(self) -> bool:
        outcome = self._execute("dome_park")
        return outcome.ok and outcome.payload == "1"

    # --- status ---

    def get_safety_status(self) -> Optional[str]:
        """SAFE or UNSAFE, None on failure."""
        outcome = self._execute("safety_status")
        return outcome.payload if outcome.has_reply else None

    def get_power_status(self) -> Optional[str]:
        """OK, OUT or N/A, None on failure."""
        outcome = self._execute("power_status")
        return outcome.payload if outcome.has_reply else None

    def get_weather(self) -> Dict[str, float]:
        """Readings for the measurements discovery found enabled."""
        readings = {}
        for measurement, command in self.LEXICON.weather.items():
            if not self.capabilities.is_weather_enabled(measurement):
                continue
            outcome = self._execute(command)
            value = parse_float(outcome.payload) if outcome.has_reply else None
            if value is not None:
                readings[measurement] = value
        return readings

    def poll(self) -> OCSState:
        """Read roof, thermostat, dome and weather state."""
        self._require_connected()
        caps = self.capabilities

        thermostat = self.get_thermostat() if caps.has_thermostat else None
        state = OCSState(
            roof=self.get_roof_status(),
            roof_error=self.get_roof_error(),
            safety=self.get_safety_status(),
            power=self.get_power_status(),
            thermostat_temperature=thermostat[0] if thermostat else None,
            thermostat_humidity=thermostat[1] if thermostat else None,
            heat_setpoint=self.get_heat_setpoint() if caps.has_thermostat else None,
            cool_setpoint=self.get_cool_setpoint() if caps.has_thermostat else None,
            dome_azimuth=self.get_dome_azimuth() if caps.has_dome else None,
            weather=self.get_weather(),
            timestamp=datetime.now().isoformat(timespec="seconds"),
        )
        self._publish(state)
        return state
