"""
Protocol package for the '#'-terminated OnStep/OCS command protocol.
"""

from onstep_drivers.protocol.interface import Transport, TransportKind
from onstep_drivers.protocol.transport import PySerialTransport
from onstep_drivers.protocol.framing import (
    RB_MAX_LEN,
    CMD_MAX_LEN,
    FramedResponse,
    frame_response,
    parse_int,
    parse_float,
    encode_command,
    parse_sexagesimal,
    format_sexagesimal,
)
from onstep_drivers.protocol.lexicon import (
    ResponseKind,
    CommandSpec,
    Lexicon,
    OCS_LEXICON,
    ONSTEP_AUX_LEXICON,
)
from onstep_drivers.protocol.guard import SequencingGuard
from onstep_drivers.protocol.engine import (
    CommandEngine,
    OutcomeStatus,
    ResultCode,
    TimeoutProfile,
    TransactionOutcome,
    DEFAULT_PROFILE,
    SERIAL_PROFILE,
    NETWORK_PROFILE,
    profile_for,
)
from onstep_drivers.protocol.port_scanner import (
    PortInfo,
    DiscoveredDevice,
    list_available_ports,
    scan_for_device,
    find_first_device,
)

__all__ = [
    "Transport",
    "TransportKind",
    "PySerialTransport",
    "RB_MAX_LEN",
    "CMD_MAX_LEN",
    "FramedResponse",
    "frame_response",
    "parse_int",
    "parse_float",
    "encode_command",
    "parse_sexagesimal",
    "format_sexagesimal",
    "ResponseKind",
    "CommandSpec",
    "Lexicon",
    "OCS_LEXICON",
    "ONSTEP_AUX_LEXICON",
    "SequencingGuard",
    "CommandEngine",
    "OutcomeStatus",
    "ResultCode",
    "TimeoutProfile",
    "TransactionOutcome",
    "DEFAULT_PROFILE",
    "SERIAL_PROFILE",
    "NETWORK_PROFILE",
    "profile_for",
    "PortInfo",
    "DiscoveredDevice",
    "list_available_ports",
    "scan_for_device",
    "find_first_device",
]
