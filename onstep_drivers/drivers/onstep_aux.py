"""
OnStep Aux driver: focuser, rotator and weather sensors of an OnStepX
auxiliary controller.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, Optional

from onstep_drivers.drivers.base import BaseDriver
from onstep_drivers.protocol.framing import format_sexagesimal, parse_float, parse_sexagesimal
from onstep_drivers.protocol.lexicon import ONSTEP_AUX_LEXICON
from onstep_drivers.utils.exceptions import InvalidValueError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FocuserState:
    position: Optional[int] = None
    moving: Optional[bool] = None
    min_position: Optional[int] = None
    max_position: Optional[int] = None
    temperature: Optional[float] = None
    diff_temperature: Optional[float] = None
    tc_coefficient: Optional[float] = None
    tc_deadband: Optional[int] = None
    tc_enabled: Optional[bool] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RotatorState:
    angle: Optional[float] = None
    min_angle: Optional[float] = None
    max_angle: Optional[float] = None
    moving: Optional[bool] = None
    backlash: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AuxState:
    """One poll's worth of readings for the subsystems present."""
    focuser: Optional[FocuserState] = None
    rotator: Optional[RotatorState] = None
    weather: Dict[str, float] = field(default_factory=dict, hash=False)
    timestamp: str = ""

    def to_dict(self) -> dict:
        return {
            "focuser": self.focuser.to_dict() if self.focuser else None,
            "rotator": self.rotator.to_dict() if self.rotator else None,
            "weather": dict(self.weather),
            "timestamp": self.timestamp,
        }


def _motion(status: str) -> Optional[bool]:
    """M = moving, S = stopped; anything else is invalid."""
    if status.startswith("M"):
        return True
    if status.startswith("S"):
        return False
    return None


class OnStepAuxDriver(BaseDriver):
    """
    OnStepX auxiliary controller.

    Installs a sequencing guard so a poll's queries never interleave with
    commands from the API.
    """

    LEXICON = ONSTEP_AUX_LEXICON
    USE_GUARD = True
    NAME = "OnStep Aux"

    TC_COEFFICIENT_LIMIT = 1000.0
    DEADBAND_MIN = 1
    DEADBAND_MAX = 32767

    _rotator_active = False
    _focuser_limits = (None, None)
    _rotator_limits = (None, None)

    def _on_connected(self) -> None:
        self._rotator_active = self.capabilities.has_rotator
        self._focuser_limits = (None, None)
        self._rotator_limits = (None, None)

    # --- focuser ---

    def update_focuser(self) -> Optional[FocuserState]:
        """
        Read all focuser values. Each reading is independent; failed ones are None.

        Returns:
            FocuserState, or None when no focuser is present.
        """
        if not self.capabilities.has_focuser:
            return None

        with self.engine.sequence():
            position = self._read_value("focuser_position")

            status = self._execute("focuser_status")
            moving = _motion(status.payload) if status.ok else None
            if moving is None:
                logger.warning("Communication :FT# error, check connection.")

            max_position = self._read_value("focuser_max")
            min_position = self._read_value("focuser_min")
            temperature = self._read_value("focuser_temperature")
            diff_temperature = self._read_value("focuser_diff_temperature")
            coefficient = self._read_value("focuser_tc_coefficient")
            deadband = self._read_value("focuser_tc_deadband")

            enabled = self._execute("focuser_tc_enabled")
            tc_enabled = None
            if enabled.ok and enabled.payload in ("0", "1"):
                tc_enabled = enabled.payload == "1"

        if min_position is not None or max_position is not None:
            self._focuser_limits = (min_position, max_position)

        return FocuserState(
            position=position,
            moving=moving,
            min_position=min_position,
            max_position=max_position,
            temperature=temperature,
            diff_temperature=diff_temperature,
            tc_coefficient=coefficient,
            tc_deadband=deadband,
            tc_enabled=tc_enabled,
        )

    def _read_value(self, name: str):
        outcome = self._execute(name)
        if not outcome.ok:
            logger.warning(f"Communication error reading {name}, check connection.")
            return None
        return outcome.value

    def move_focuser_absolute(self, ticks: int) -> bool:
        """
        Move the focuser to an absolute position.

        Raises:
            InvalidValueError: If ticks is outside the last known limits.
        """
        low, high = self._focuser_limits
        if ticks < (low if low is not None else 0) or (high is not None and ticks > high):
            raise InvalidValueError(f"Focuser position {ticks} out of range [{low}, {high}]")

        outcome = self._execute("focuser_move_absolute", ticks)
        accepted = outcome.ok and outcome.payload == "1"
        if accepted:
            logger.info(f"Focuser moving to {ticks}")
        else:
            logger.warning(f"Focuser move to {ticks} rejected (reply {outcome.payload!r})")
        return accepted

    def move_focuser_relative(self, steps: int) -> bool:
        """Move the focuser by steps (negative moves inward)."""
        logger.info(f"Focuser moving by {steps} steps")
        return self._execute("focuser_move_relative", steps).ok

    def abort_focuser(self) -> bool:
        logger.info("Focuser abort")
        return self._execute("focuser_stop").ok

    def set_temperature_coefficient(self, value: float) -> bool:
        """
        Set the temperature compensation coefficient (microns per deg C).

        Raises:
            InvalidValueError: If |value| >= 1000.
        """
        if abs(value) >= self.TC_COEFFICIENT_LIMIT:
            raise InvalidValueError(f"TFC coefficient {value} out of range (-1000, 1000)")
        sent = self._execute("set_focuser_tc_coefficient", value).ok
        if sent:
            logger.info(f"TFC coefficient set to {value:+3.5f}")
        return sent

    def set_deadband(self, value: int) -> bool:
        """
        Set the temperature compensation deadband (steps).

        Raises:
            InvalidValueError: If value is outside 1-32767.
        """
        if not self.DEADBAND_MIN <= value <= self.DEADBAND_MAX:
            raise InvalidValueError(
                f"TFC deadband {value} out of range [{self.DEADBAND_MIN}, {self.DEADBAND_MAX}]"
            )
        sent = self._execute("set_focuser_tc_deadband", value).ok
        if sent:
            logger.info(f"TFC deadband set to {value}")
        return sent

    # --- rotator ---

    @property
    def rotator_active(self) -> bool:
        return self._rotator_active

    def update_rotator(self) -> Optional[RotatorState]:
        """
        Read rotator angle, limits, status and backlash.

        A bare '0' reply to the angle query means no rotator is fitted;
        rotator polling then stops for this connection.
        """
        if not self._rotator_active:
            return None

        with self.engine.sequence():
            outcome = self._execute("rotator_angle")
            if outcome.ok and outcome.payload == "0":
                logger.info("Controller reports no rotator, disabling further checks")
                self._rotator_active = False
                return None
            if not outcome.has_reply:
                logger.warning("Error talking to rotator, might be timeout (especially on network)")
                return None

            angle = parse_sexagesimal(outcome.payload)
            if angle is None:
                logger.warning(f"Invalid rotator angle: {outcome.payload!r}")
                return None

            min_angle = self._read_value("rotator_min")
            max_angle = self._read_value("rotator_max")
            status = self._execute("rotator_status")
            moving = _motion(status.payload) if status.has_reply else None
            backlash = self._read_value("rotator_backlash")

        if min_angle is not None or max_angle is not None:
            self._rotator_limits = (min_angle, max_angle)

        return RotatorState(
            angle=angle,
            min_angle=min_angle,
            max_angle=max_angle,
            moving=moving,
            backlash=backlash,
        )

    def move_rotator(self, angle: float) -> bool:
        """
        Rotate to an absolute angle in degrees.

        Raises:
            InvalidValueError: If angle is outside the last known limits.
        """
        low, high = self._rotator_limits
        if (low is not None and angle < low) or (high is not None and angle > high):
            raise InvalidValueError(f"Rotator angle {angle} out of range [{low}, {high}]")

        target = format_sexagesimal(angle)
        logger.info(f"Move rotator: {target}")
        outcome = self._execute("rotator_move", target)
        return outcome.ok and outcome.payload == "1"

    def home_rotator(self) -> bool:
        logger.info("Moving rotator to home")
        return self._execute("rotator_home").ok

    def abort_rotator(self) -> bool:
        # De-rotation is left running
        logger.info("Aborting rotation")
        return self._execute("rotator_stop").ok

    def set_rotator_backlash(self, steps: int) -> bool:
        """
        Raises:
            InvalidValueError: If steps is negative.
        """
        if steps < 0:
            raise InvalidValueError(f"Rotator backlash {steps} must not be negative")
        outcome = self._execute("set_rotator_backlash", steps)
        return outcome.ok and outcome.payload == "0"

    # --- weather ---

    def update_weather(self) -> Dict[str, float]:
        """Readings for the measurements discovery found enabled."""
        readings = {}
        if not self.capabilities.has_weather:
            return readings

        with self.engine.sequence():
            for measurement, command in self.LEXICON.weather.items():
                if not self.capabilities.is_weather_enabled(measurement):
                    continue
                outcome = self._execute(command)
                value = parse_float(outcome.payload) if outcome.has_reply else None
                if value is not None:
                    readings[measurement] = value
        return readings

    def poll(self) -> AuxState:
        """Read focuser, rotator and weather as present, as one guarded sequence."""
        self._require_connected()

        with self.engine.sequence():
            state = AuxState(
                focuser=self.update_focuser(),
                rotator=self.update_rotator(),
                weather=self.update_weather(),
                timestamp=datetime.now().isoformat(timespec="seconds"),
            )
        self._publish(state)
        return state
