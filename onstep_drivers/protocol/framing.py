"""
Framing and parsing for the '#'-terminated ASCII command protocol.

Commands look like ":FG#" or ":SH21#". Responses are read up to and including
the '#' terminator, bounded to RB_MAX_LEN bytes.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional

from onstep_drivers.utils.exceptions import ProtocolError


logger = logging.getLogger(__name__)

TERMINATOR = b"#"
RB_MAX_LEN = 64
CMD_MAX_LEN = 32

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_SEXA_RE = re.compile(r"^([+-])?(\d{1,3})[*:](\d{1,2})(?:[:'](\d{1,2}))?$")


@dataclass(frozen=True)
class FramedResponse:
    """Bytes read for one transaction, split at the terminator."""
    payload: str
    byte_count: int
    terminated: bool
    overflow: bool = False


def frame_response(raw: bytes) -> FramedResponse:
    """
    Extract the payload from a raw response.

    The payload is the text before the first terminator. Without a
    terminator, a short read is kept whole; a read that filled the response
    buffer is cut to RB_MAX_LEN - 1 characters and flagged as overflow.

    Args:
        raw: Bytes as read from the transport.

    Returns:
        FramedResponse with payload, byte count and flags.
    """
    raw = raw[:RB_MAX_LEN]
    byte_count = len(raw)
    end = raw.find(TERMINATOR)

    overflow = False
    if end >= 0:
        body = raw[:end]
    elif byte_count >= RB_MAX_LEN:
        body = raw[:RB_MAX_LEN - 1]
        overflow = True
        logger.warning(
            f"Response overflow: {byte_count} bytes without terminator, "
            f"truncated to {len(body)}"
        )
    else:
        body = raw

    return FramedResponse(
        payload=body.decode("ascii", errors="replace"),
        byte_count=byte_count,
        terminated=end >= 0,
        overflow=overflow,
    )


def parse_int(text: str) -> Optional[int]:
    """Strict integer parse. Returns None unless the whole text is an integer."""
    text = text.strip()
    if not _INT_RE.match(text):
        return None
    return int(text)


def parse_float(text: str) -> Optional[float]:
    """
    Strict decimal parse.

    Returns None for anything that is not a finite decimal number,
    including 'nan', 'inf', 'N/A' and trailing garbage such as '12abc'.
    """
    text = text.strip()
    if not _FLOAT_RE.match(text):
        return None
    value = float(text)
    if not math.isfinite(value):
        return None
    return value


def encode_command(template: str, *args) -> bytes:
    """
    Build a command from a template and encode it for the wire.

    Args:
        template: Command template, e.g. ":SH{0:.0f}#" or ":FG#".
        *args: Values substituted into the template.

    Returns:
        ASCII-encoded command.

    Raises:
        ProtocolError: If the command is malformed or too long.
    """
    try:
        command = template.format(*args) if args else template
    except (IndexError, KeyError, ValueError) as e:
        raise ProtocolError(f"Cannot build command from {template!r}: {e}") from e

    if not command.startswith(":") or not command.endswith("#"):
        raise ProtocolError(f"Command must start with ':' and end with '#': {command!r}")
    if "#" in command[:-1] or "{" in command:
        raise ProtocolError(f"Malformed command: {command!r}")
    if len(command) > CMD_MAX_LEN:
        raise ProtocolError(f"Command exceeds {CMD_MAX_LEN} characters: {command!r}")

    try:
        return command.encode("ascii")
    except UnicodeEncodeError as e:
        raise ProtocolError(f"Command is not ASCII: {command!r}") from e


def parse_sexagesimal(text: str) -> Optional[float]:
    """
    Parse an angle in sDDD*MM or sDDD:MM:SS form to degrees.

    Returns None when the text is not a valid angle.
    """
    match = _SEXA_RE.match(text.strip())
    if not match:
        return None

    sign, degrees, minutes, seconds = match.groups()
    minutes = int(minutes)
    seconds = int(seconds) if seconds else 0
    if minutes >= 60 or seconds >= 60:
        return None

    value = int(degrees) + minutes / 60.0 + seconds / 3600.0
    return -value if sign == "-" else value


def format_sexagesimal(angle: float) -> str:
    """Format degrees as DDD:MM:SS (rounded to the nearest second)."""
    total = int(round(abs(angle) * 3600))
    degrees, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    sign = "-" if angle < 0 and total else ""
    return f"{sign}{degrees:03d}:{minutes:02d}:{seconds:02d}"
