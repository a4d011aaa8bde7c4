"""
Simulated OCS / OnStep Aux controller.

MockDevice implements the Transport interface, so the real engine, discovery
and drivers run against it unchanged. Commands are answered as the firmware
would; motion (focuser, rotator, roof) is simulated from elapsed time.
"""

import logging
import random
import threading
import time
from typing import Dict, Optional

from serial import SerialException

from onstep_drivers.config.models import SimulatorConfig
from onstep_drivers.protocol.framing import TERMINATOR, parse_float, parse_int, parse_sexagesimal
from onstep_drivers.protocol.interface import Transport, TransportKind


logger = logging.getLogger(__name__)

ONSTEP_WEATHER = {"GX9A": "temperature", "GX9B": "pressure", "GX9C": "humidity", "GX9E": "dew_point"}
OCS_WEATHER = {"G1": "temperature", "Gb": "pressure", "Gh": "humidity"}

WEATHER_VALUES = {"temperature": 12.5, "pressure": 1013.2, "humidity": 65.0, "dew_point": 6.1}

# Feature slot names and type codes reported by :GXYn#
FEATURE_DEFINITIONS = {
    1: ("Dew1", 3),
    2: ("Dew2", 3),
    3: ("Flat", 1),
    4: ("Cover", 6),
    5: ("Trigger", 5),
    6: ("Aux6", 1),
    7: ("Aux7", 1),
    8: ("Power", 1),
}


class _Motion:
    """Linear motion between two values at constant speed."""

    def __init__(self, value: float, speed: float):
        self._speed = speed
        self._start = value
        self._target = value
        self._started_at = time.monotonic()

    def value(self) -> float:
        elapsed = time.monotonic() - self._started_at
        span = self._target - self._start
        travelled = elapsed * self._speed
        if travelled >= abs(span):
            return self._target
        return self._start + (travelled if span >= 0 else -travelled)

    @property
    def target(self) -> float:
        return self._target

    @property
    def moving(self) -> bool:
        return self.value() != self._target

    @property
    def progress(self) -> float:
        span = abs(self._target - self._start)
        return 1.0 if span == 0 else abs(self.value() - self._start) / span

    def go(self, target: float) -> None:
        self._start = self.value()
        self._target = target
        self._started_at = time.monotonic()

    def stop(self) -> None:
        self.go(self.value())


class MockDevice(Transport):
    """
    In-memory controller answering the OCS or OnStep Aux vocabulary.
    """

    FOCUSER_MAX = 50000
    FOCUSER_SPEED = 2000.0       # steps/s
    ROTATOR_SPEED = 10.0         # deg/s
    ROOF_TRAVEL_SECONDS = 5.0

    def __init__(
        self,
        config: SimulatorConfig,
        device: str = "onstep_aux",
        kind: TransportKind = TransportKind.SERIAL,
    ):
        """
        Initialize simulator.

        Args:
            config: Simulator configuration.
            device: "ocs" or "onstep_aux".
            kind: Link kind the simulator reports.
        """
        self.config = config
        self.device = device
        self._kind = kind
        self._open = False
        self._lock = threading.Lock()
        self._rx = bytearray()
        self._rx_ready_at = 0.0

        # Test hooks
        self.fail_io = False
        self.roof_error = ""
        self._scripted: Dict[str, str] = {}
        self.commands_received = []

        # OnStep Aux state
        self._focuser = _Motion(25000, self.FOCUSER_SPEED)
        self._tc_coefficient = 0.0
        self._tc_deadband = 10
        self._tc_enabled = False
        self._rotator = _Motion(0.0, self.ROTATOR_SPEED)
        self._rotator_backlash = 0

        # OCS state
        self._roof = _Motion(0.0, 1.0 / self.ROOF_TRAVEL_SECONDS)  # 0 closed, 1 open
        self._heat_setpoint = 5
        self._cool_setpoint = 30
        self._dome_azimuth = 180.0

        logger.info("MockDevice initialized (%s, firmware %s)", device, config.firmware_version)

    # --- test hooks ---

    def script_reply(self, command: str, reply: str) -> None:
        """Answer command (e.g. ":GX9A#") with reply (e.g. "nan#") instead of the simulation."""
        self._scripted[command] = reply

    @property
    def focuser_position(self) -> int:
        return int(round(self._focuser.value()))

    # --- Transport ---

    @property
    def kind(self) -> TransportKind:
        return self._kind

    @property
    def description(self) -> str:
        return f"simulator:{self.device}"

    def open(self) -> None:
        with self._lock:
            self._open = True
            self._rx.clear()
        logger.info("Simulator link opened")

    def close(self) -> None:
        with self._lock:
            self._open = False
            self._rx.clear()

    def is_open(self) -> bool:
        return self._open

    def write(self, data: bytes) -> int:
        if self.fail_io:
            raise SerialException("Simulated write failure")
        if not self._open:
            raise SerialException("Simulator link is not open")

        command = data.decode("ascii", errors="replace")
        self.commands_received.append(command)

        if self.config.inject_timeout:
            logger.warning("[SIMULATOR] Injected timeout for %s", command)
            return len(data)

        reply = self._scripted.get(command)
        if reply is None:
            reply = self._handle(command)

        with self._lock:
            self._rx.extend(reply.encode("ascii"))
            self._rx_ready_at = time.monotonic() + self.config.response_latency_ms / 1000.0

        logger.debug("[SIMULATOR] %s -> %r", command, reply)
        return len(data)

    def _wait_ready(self, timeout: float) -> bool:
        """Wait for the reply latency to elapse; False on timeout."""
        with self._lock:
            pending = bool(self._rx)
            delay = self._rx_ready_at - time.monotonic()
        if not pending:
            if timeout > 0:
                time.sleep(timeout)
            return False
        if delay > timeout:
            time.sleep(timeout)
            return False
        if delay > 0:
            time.sleep(delay)
        return True

    def read(self, size: int, timeout: float) -> bytes:
        if self.fail_io:
            raise SerialException("Simulated read failure")
        if not self._wait_ready(timeout):
            return b""
        with self._lock:
            chunk = bytes(self._rx[:size])
            del self._rx[:size]
        return chunk

    def read_until(self, terminator: bytes, size: int, timeout: float) -> bytes:
        if self.fail_io:
            raise SerialException("Simulated read failure")
        if not self._wait_ready(timeout):
            return b""
        with self._lock:
            end = self._rx.find(terminator)
            count = size if end < 0 else min(end + len(terminator), size)
            chunk = bytes(self._rx[:count])
            del self._rx[:count]
        return chunk

    def reset_input_buffer(self) -> None:
        with self._lock:
            self._rx.clear()

    # --- command handling ---

    def _handle(self, command: str) -> str:
        if not command.startswith(":") or not command.endswith("#"):
            return "0"
        body = command[1:-1]
        if self.device == "ocs":
            reply = self._handle_ocs(body)
        else:
            reply = self._handle_onstep(body)
        if reply is None:
            logger.warning("[SIMULATOR] Unknown command: %s", command)
            return "0"
        return reply

    def _weather(self, name: str) -> str:
        if name not in self.config.weather:
            return "N/A#"
        noise = random.uniform(-0.05, 0.05)
        return f"{WEATHER_VALUES[name] + noise:.1f}#"

    def _handle_onstep(self, body: str) -> Optional[str]:
        if body == "GVP":
            return "On-Step#"
        if body == "GVN":
            return f"{self.config.firmware_version}#"
        if body == "GX9F":
            return "38.2#"
        if body in ONSTEP_WEATHER:
            return self._weather(ONSTEP_WEATHER[body])
        if body.startswith("GXY"):
            return self._handle_feature(body[3:])
        if body.startswith("F"):
            return self._handle_focuser(body[1:])
        if body.startswith("r"):
            return self._handle_rotator(body[1:])
        return None

    def _handle_feature(self, arg: str) -> Optional[str]:
        slot = parse_int(arg)
        if slot is None:
            return None
        if slot == 0:
            return f"{self.config.features}#"
        if 1 <= slot <= 8 and self.config.features[slot - 1] == "1":
            name, type_code = FEATURE_DEFINITIONS[slot]
            return f"{name},{type_code}#"
        return "N/A,N/A#"

    def _handle_focuser(self, body: str) -> Optional[str]:
        if body == "A":
            return f"{self.config.focusers}#"
        if self.config.focusers == 0:
            return "0"

        cmd, arg = body[:1], body[1:]
        if cmd == "G" and not arg:
            return f"{self.focuser_position}#"
        if cmd == "T":
            return "M#" if self._focuser.moving else "S#"
        if cmd == "I":
            return "0#"
        if cmd == "M":
            return f"{self.FOCUSER_MAX}#"
        if cmd == "t":
            return "21.4#"
        if cmd == "e":
            return "-0.3#"
        if cmd == "c":
            return "1" if self._tc_enabled else "0"
        if cmd == "Q":
            self._focuser.stop()
            return ""
        if cmd == "C":
            if not arg:
                return f"{self._tc_coefficient:+.5f}#"
            value = parse_float(arg)
            if value is not None:
                self._tc_coefficient = value
            return ""
        if cmd == "D":
            if not arg:
                return f"{self._tc_deadband}#"
            value = parse_int(arg)
            if value is not None:
                self._tc_deadband = value
            return ""
        if cmd == "S":
            target = parse_int(arg)
            if target is None or not 0 <= target <= self.FOCUSER_MAX:
                return "0"
            self._focuser.go(target)
            logger.info("[SIMULATOR] Focuser moving to %d", target)
            return "1"
        if cmd == "R":
            steps = parse_int(arg)
            if steps is None:
                return ""
            target = min(max(self.focuser_position + steps, 0), self.FOCUSER_MAX)
            self._focuser.go(target)
            return ""
        return None

    def _handle_rotator(self, body: str) -> Optional[str]:
        rotator = self.config.rotator
        if body == "A":
            return {"rotator": "R#", "derotator": "D#"}.get(rotator, "0#")
        if rotator == "none":
            return "0"

        cmd, arg = body[:1], body[1:]
        if cmd == "G":
            angle = self._rotator.value()
            degrees = int(abs(angle))
            minutes = int(round((abs(angle) - degrees) * 60)) % 60
            sign = "-" if angle < 0 else "+"
            return f"{sign}{degrees:03d}*{minutes:02d}#"
        if cmd == "I":
            return "0.0#"
        if cmd == "M":
            return "360.0#"
        if cmd == "T":
            return "M#" if self._rotator.moving else "S#"
        if cmd == "S":
            target = parse_sexagesimal(arg)
            if target is None:
                return "0"
            self._rotator.go(target)
            return "1"
        if cmd == "C":
            self._rotator.go(0.0)
            return ""
        if cmd == "Q":
            self._rotator.stop()
            return ""
        if cmd == "b":
            if not arg:
                return f"{self._rotator_backlash}#"
            value = parse_int(arg)
            if value is None or value < 0:
                return "1"
            self._rotator_backlash = value
            return "0"
        return None

    def _handle_ocs(self, body: str) -> Optional[str]:
        if body == "IP":
            return "OCS#"
        if body == "IN":
            return f"{self.config.firmware_version}#"
        if body == "IT":
            return "1.0,2.0#"
        if body == "Gs":
            return "SAFE#"
        if body == "GP":
            return "OK#"
        if body == "GX9F":
            return "41.0#"
        if body in OCS_WEATHER:
            return self._weather(OCS_WEATHER[body])
        if body == "GT":
            return "14.2,48.0#"
        if body == "GH":
            return f"{self._heat_setpoint}#"
        if body == "GV":
            return f"{self._cool_setpoint}#"
        if body[:2] in ("SH", "SC"):
            value = parse_int(body[2:])
            if value is None or not 0 <= value <= 40:
                return "0#"
            if body.startswith("SH"):
                self._heat_setpoint = value
            else:
                self._cool_setpoint = value
            return "1#"
        if body.startswith("R"):
            return self._handle_roof(body[1:])
        if body.startswith("D"):
            return self._handle_dome(body[1:])
        return None

    def _handle_roof(self, cmd: str) -> Optional[str]:
        if cmd == "O":
            self._roof.go(1.0)
            return ""
        if cmd == "C":
            self._roof.go(0.0)
            return ""
        if cmd == "H":
            self._roof.stop()
            return ""
        if cmd == "S":
            position = self._roof.value()
            if self._roof.moving:
                direction = "o" if self._roof.target > position else "c"
                return f"{direction},Travel: {int(self._roof.progress * 100)}%#"
            if position >= 1.0:
                return "i,OPEN#"
            if position <= 0.0:
                return "i,CLOSED#"
            return "i,No Error#"
        if cmd == "SL":
            return f"{self.roof_error}#"
        return None

    def _handle_dome(self, cmd: str) -> Optional[str]:
        if cmd == "U":
            return "1#" if self.config.has_dome else "0#"
        if not self.config.has_dome:
            return "0"
        if cmd == "Z":
            return f"{self._dome_azimuth:.1f}#"
        if cmd == "H":
            return ""
        if cmd == "P":
            self._dome_azimuth = 0.0
            return "1#"
        return None
