"""
Command vocabularies for the OCS and OnStep Aux controllers.

Each controller speaks the same framing but its own set of commands. A
Lexicon maps a command name to its wire template and the reply shape the
engine must expect, so the engine and discovery code stay shared.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from onstep_drivers.protocol.framing import encode_command
from onstep_drivers.utils.exceptions import UnknownCommandError


class ResponseKind(Enum):
    """Reply shape expected for a command."""
    NONE = "none"                # blind, nothing is read
    SINGLE_CHAR = "single_char"  # one byte, no terminator
    OPAQUE = "opaque"            # text up to '#'
    INTEGER = "integer"
    FLOAT = "float"


@dataclass(frozen=True)
class CommandSpec:
    """Wire template and reply shape for one command."""
    template: str
    kind: ResponseKind

    def build(self, *args) -> bytes:
        """Encode the command with its parameters."""
        return encode_command(self.template, *args)


@dataclass(frozen=True)
class Lexicon:
    """
    Vocabulary of one controller type.

    Attributes:
        product: Name reported by the identification command.
        handshake: Command name of the identification query.
        min_firmware: Oldest supported firmware, None when unchecked.
        serial_timeout_us: Reply timeout on a serial link, in microseconds.
        commands: Command name to CommandSpec.
        weather: Weather measurement name to command name.
    """
    product: str
    handshake: str
    min_firmware: Optional[float]
    serial_timeout_us: int = 200000
    commands: Dict[str, CommandSpec] = field(default_factory=dict, hash=False)
    weather: Dict[str, str] = field(default_factory=dict, hash=False)

    def spec(self, name: str) -> CommandSpec:
        try:
            return self.commands[name]
        except KeyError:
            raise UnknownCommandError(f"{self.product} has no command '{name}'") from None

    def __contains__(self, name: str) -> bool:
        return name in self.commands


def _c(template: str, kind: ResponseKind) -> CommandSpec:
    return CommandSpec(template, kind)


BLIND = ResponseKind.NONE
CHAR = ResponseKind.SINGLE_CHAR
TEXT = ResponseKind.OPAQUE
INT = ResponseKind.INTEGER
FLOAT = ResponseKind.FLOAT


OCS_LEXICON = Lexicon(
    product="OCS",
    handshake="product",
    min_firmware=None,
    commands={
        "product": _c(":IP#", TEXT),
        "firmware": _c(":IN#", TEXT),
        # pre,post roof motion delays in seconds
        "roof_delays": _c(":IT#", TEXT),
        "safety_status": _c(":Gs#", TEXT),
        "power_status": _c(":GP#", TEXT),
        "mcu_temperature": _c(":GX9F#", FLOAT),

        "roof_open": _c(":RO#", BLIND),
        "roof_close": _c(":RC#", BLIND),
        "roof_stop": _c(":RH#", BLIND),
        "roof_status": _c(":RS#", TEXT),
        "roof_last_error": _c(":RSL#", TEXT),

        "dome_status": _c(":DU#", TEXT),
        "dome_azimuth": _c(":DZ#", FLOAT),
        "dome_stop": _c(":DH#", BLIND),
        "dome_park": _c(":DP#", TEXT),

        "outside_temperature": _c(":G1#", TEXT),
        "pressure": _c(":Gb#", TEXT),
        "humidity": _c(":Gh#", TEXT),

        "thermostat_status": _c(":GT#", TEXT),
        "heat_setpoint": _c(":GH#", INT),
        "cool_setpoint": _c(":GV#", INT),
        "set_heat_setpoint": _c(":SH{0:.0f}#", TEXT),
        "set_cool_setpoint": _c(":SC{0:.0f}#", TEXT),
    },
    weather={
        "temperature": "outside_temperature",
        "pressure": "pressure",
        "humidity": "humidity",
    },
)


ONSTEP_AUX_LEXICON = Lexicon(
    product="On-Step",
    handshake="product",
    min_firmware=10.25,
    serial_timeout_us=100000,
    commands={
        "product": _c(":GVP#", TEXT),
        "firmware": _c(":GVN#", TEXT),

        "focuser_count": _c(":FA#", INT),
        "focuser_position": _c(":FG#", INT),
        "focuser_status": _c(":FT#", TEXT),
        "focuser_min": _c(":FI#", INT),
        "focuser_max": _c(":FM#", INT),
        "focuser_temperature": _c(":Ft#", FLOAT),
        "focuser_diff_temperature": _c(":Fe#", FLOAT),
        "focuser_tc_coefficient": _c(":FC#", FLOAT),
        "focuser_tc_deadband": _c(":FD#", INT),
        "focuser_tc_enabled": _c(":Fc#", CHAR),
        "focuser_move_absolute": _c(":FS{0:06d}#", CHAR),
        "focuser_move_relative": _c(":FR{0:04d}#", BLIND),
        "focuser_stop": _c(":FQ#", BLIND),
        "set_focuser_tc_coefficient": _c(":FC{0:+3.5f}#", BLIND),
        "set_focuser_tc_deadband": _c(":FD{0:d}#", BLIND),

        "rotator_defined": _c(":rA#", TEXT),
        "rotator_angle": _c(":rG#", TEXT),
        "rotator_min": _c(":rI#", FLOAT),
        "rotator_max": _c(":rM#", FLOAT),
        "rotator_status": _c(":rT#", TEXT),
        "rotator_backlash": _c(":rb#", INT),
        "rotator_move": _c(":rS{0}#", CHAR),
        "rotator_home": _c(":rC#", BLIND),
        "rotator_stop": _c(":rQ#", BLIND),
        "set_rotator_backlash": _c(":rb{0:d}#", CHAR),

        "temperature": _c(":GX9A#", TEXT),
        "pressure": _c(":GX9B#", TEXT),
        "humidity": _c(":GX9C#", TEXT),
        "dew_point": _c(":GX9E#", TEXT),
        "mcu_temperature": _c(":GX9F#", FLOAT),

        "features": _c(":GXY0#", TEXT),
        "feature_info": _c(":GXY{0:d}#", TEXT),
    },
    weather={
        "temperature": "temperature",
        "pressure": "pressure",
        "humidity": "humidity",
        "dew_point": "dew_point",
    },
)
