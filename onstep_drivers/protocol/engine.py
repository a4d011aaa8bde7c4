"""
Command transaction engine shared by the OCS and OnStep Aux drivers.

One transaction is: flush stale input, write the command, read the reply
(one byte, or up to '#'), then frame and parse it. Per-command failures are
returned as TransactionOutcome values; only lifecycle problems raise.

Architecture aligned with the firmware's single-request discipline:
- One request outstanding per connection (transport lock)
- Multi-command sequences serialized by an optional SequencingGuard
- Parsing happens outside the lock
"""

import logging
import threading
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Union

from onstep_drivers.protocol.framing import (
    RB_MAX_LEN,
    TERMINATOR,
    encode_command,
    frame_response,
    parse_float,
    parse_int,
)
from onstep_drivers.protocol.guard import SequencingGuard
from onstep_drivers.protocol.interface import Transport, TransportKind
from onstep_drivers.protocol.lexicon import Lexicon, ResponseKind
from onstep_drivers.protocol.logger import ProtocolLogger, get_protocol_logger
from onstep_drivers.utils.exceptions import NotConnectedError


logger = logging.getLogger(__name__)


class ResultCode(IntEnum):
    """Negative result codes carried by failed outcomes."""
    READ_ERROR = -1
    WRITE_ERROR = -2
    TIMEOUT = -4
    PORT_FAILURE = -5
    FORMAT_ERROR = -1001


class OutcomeStatus(Enum):
    OK = "OK"
    TIMEOUT = "TIMEOUT"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    FORMAT_ERROR = "FORMAT_ERROR"


@dataclass(frozen=True)
class TransactionOutcome:
    """
    Result of one command transaction.

    Attributes:
        status: Classification of the transaction.
        command: Command text that was sent.
        payload: Reply text before the terminator.
        byte_count: Bytes read (terminator included).
        value: Parsed value (int/float for numeric replies, else the payload).
        error_code: Result code when status is not OK.
        overflow: Reply filled the buffer without a terminator.
        written: Bytes written, set for blind sends that read nothing.
    """
    status: OutcomeStatus
    command: str
    payload: str = ""
    byte_count: int = 0
    value: Union[int, float, str, None] = None
    error_code: Optional[ResultCode] = None
    overflow: bool = False
    written: int = 0

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def code(self) -> int:
        """Bytes read (or written, for a blind send) on success, negative result code otherwise."""
        if self.ok:
            return self.byte_count or self.written
        return int(self.error_code)

    @property
    def has_reply(self) -> bool:
        """True for a real reply rather than a lone status character."""
        return self.ok and self.byte_count > 1

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "command": self.command,
            "payload": self.payload,
            "byte_count": self.byte_count,
            "value": self.value,
            "code": self.code,
            "overflow": self.overflow,
        }


@dataclass(frozen=True)
class TimeoutProfile:
    """Reply timeout as (seconds, microseconds)."""
    seconds: int
    microseconds: int

    @property
    def total(self) -> float:
        return self.seconds + self.microseconds / 1_000_000

    def __str__(self) -> str:
        return f"{self.total:.3f}s"


DEFAULT_PROFILE = TimeoutProfile(0, 100000)
SERIAL_PROFILE = TimeoutProfile(0, 200000)
NETWORK_PROFILE = TimeoutProfile(2, 0)


def profile_for(kind: TransportKind, lexicon: Optional[Lexicon] = None) -> TimeoutProfile:
    """
    Timeout profile for a link kind.

    On a serial link the vocabulary's own timeout wins when one is given.
    """
    if kind is TransportKind.NETWORK:
        return NETWORK_PROFILE
    if lexicon is None or lexicon.serial_timeout_us == SERIAL_PROFILE.microseconds:
        return SERIAL_PROFILE
    return TimeoutProfile(0, lexicon.serial_timeout_us)


class CommandEngine:
    """
    Synchronous request/response engine over a Transport.

    The engine spawns no threads. Concurrent callers are serialized by a
    per-instance lock around each write/read pair and, when a guard is
    installed, by the guard around each whole transaction.
    """

    # Pre-flush: per-read wait and maximum stale chunks drained
    FLUSH_READ_TIMEOUT = 0.001
    FLUSH_MAX_READS = 16

    def __init__(
        self,
        transport: Transport,
        lexicon: Optional[Lexicon] = None,
        guard: Optional[SequencingGuard] = None,
        protocol_logger: Optional[ProtocolLogger] = None,
    ):
        """
        Args:
            transport: Open or openable byte link.
            lexicon: Command vocabulary used by execute().
            guard: Optional sequencing guard held for each transaction.
            protocol_logger: Message ring buffer (defaults to the global one).
        """
        self._transport = transport
        self._lexicon = lexicon
        self._lock = threading.Lock()
        self._guard = guard
        self._protocol_logger = protocol_logger or get_protocol_logger()
        self._profile = DEFAULT_PROFILE
        if guard:
            guard.set_timeout(self._profile.total)

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def lexicon(self) -> Optional[Lexicon]:
        return self._lexicon

    @property
    def guard(self) -> Optional[SequencingGuard]:
        return self._guard

    @property
    def protocol_logger(self) -> ProtocolLogger:
        return self._protocol_logger

    @property
    def timeout_profile(self) -> TimeoutProfile:
        return self._profile

    def set_timeout_profile(self, profile: TimeoutProfile) -> None:
        """Select the reply timeout used by every following transaction."""
        self._profile = profile
        if self._guard:
            self._guard.set_timeout(profile.total)
        logger.info(f"Command timeout set to {profile} ({self._transport.description})")

    def sequence(self):
        """
        Context manager holding the guard for a multi-command sequence.

        Without a guard this is a no-op context.
        """
        return self._guard if self._guard else nullcontext()

    # --- core contract ---

    def send_blind(self, command: Union[str, bytes]) -> bool:
        """
        Write a command without reading a reply.

        Returns:
            True if the write succeeded.
        """
        return self._exchange(self._encode(command), ResponseKind.NONE).ok

    def send_expecting_digit(self, command: Union[str, bytes]) -> bool:
        """
        Send a command answered by one status character.

        Returns:
            True only when the reply is '0'.
        """
        outcome = self._exchange(self._encode(command), ResponseKind.SINGLE_CHAR)
        return outcome.ok and outcome.payload == "0"

    def query(self, command: Union[str, bytes], kind: ResponseKind) -> TransactionOutcome:
        """
        Send a command and read a reply of the given shape.

        Args:
            command: Command text (":FG#") or encoded bytes.
            kind: Expected reply shape.

        Returns:
            TransactionOutcome describing the reply or the failure.

        Raises:
            NotConnectedError: If the transport is not open.
            ProtocolError: If the command text is malformed.
        """
        return self._exchange(self._encode(command), kind)

    def execute(self, name: str, *args) -> TransactionOutcome:
        """
        Run a named command from the vocabulary.

        Args:
            name: Command name, e.g. "focuser_position".
            *args: Template parameters.

        Raises:
            UnknownCommandError: If the vocabulary has no such command.
            ProtocolError: If the parameters produce a malformed command.
        """
        if self._lexicon is None:
            raise RuntimeError("CommandEngine has no vocabulary; use query()")
        spec = self._lexicon.spec(name)
        return self._exchange(spec.build(*args), spec.kind)

    # --- internals ---

    @staticmethod
    def _encode(command: Union[str, bytes]) -> bytes:
        if isinstance(command, bytes):
            return command
        return encode_command(command)

    def _flush(self) -> None:
        """Discard stale input left by earlier replies or unsolicited output."""
        with self._lock:
            try:
                self._transport.reset_input_buffer()
                for _ in range(self.FLUSH_MAX_READS):
                    if not self._transport.read_until(TERMINATOR, RB_MAX_LEN, self.FLUSH_READ_TIMEOUT):
                        break
            except OSError as e:
                logger.debug(f"Input flush stopped: {e}")

    def _exchange(self, command: bytes, kind: ResponseKind) -> TransactionOutcome:
        if not self._transport.is_open():
            raise NotConnectedError("Controller link is not open")

        text = command.decode("ascii")

        with self.sequence():
            self._flush()

            with self._lock:
                logger.debug(f"TX: {text}")
                self._protocol_logger.log_tx(text)

                try:
                    self._transport.write(command)
                except OSError as e:
                    logger.warning(f"Failed to send {text}, check connection: {e}")
                    self._protocol_logger.log_error(f"Write failed: {e}", text)
                    return TransactionOutcome(
                        OutcomeStatus.TRANSPORT_ERROR, text, error_code=ResultCode.WRITE_ERROR
                    )

                if kind is ResponseKind.NONE:
                    return TransactionOutcome(OutcomeStatus.OK, text, written=len(command))

                timeout = self._profile.total
                try:
                    if kind is ResponseKind.SINGLE_CHAR:
                        raw = self._transport.read(1, timeout)
                        # Drop any terminator following the status character
                        self._transport.reset_input_buffer()
                    else:
                        raw = self._transport.read_until(TERMINATOR, RB_MAX_LEN, timeout)
                except OSError as e:
                    logger.warning(f"Failed to read reply to {text}, check connection: {e}")
                    self._protocol_logger.log_error(f"Read failed: {e}", text)
                    return TransactionOutcome(
                        OutcomeStatus.TRANSPORT_ERROR, text, error_code=ResultCode.READ_ERROR
                    )

        return self._classify(text, kind, raw)

    def _classify(self, text: str, kind: ResponseKind, raw: bytes) -> TransactionOutcome:
        if not raw:
            logger.warning(f"No reply to {text} within {self._profile}, check connection")
            self._protocol_logger.log_error("Timeout", text)
            return TransactionOutcome(OutcomeStatus.TIMEOUT, text, error_code=ResultCode.TIMEOUT)

        framed = frame_response(raw)
        logger.debug(f"RX: {framed.payload!r} ({framed.byte_count} bytes)")

        if kind is not ResponseKind.SINGLE_CHAR and not framed.terminated and not framed.overflow:
            logger.warning(
                f"Reply to {text} cut off after {framed.byte_count} bytes "
                f"within {self._profile}, check connection"
            )
            self._protocol_logger.log_error(f"Timeout, partial reply {framed.payload!r}", text)
            self._resync()
            return TransactionOutcome(
                OutcomeStatus.TIMEOUT,
                text,
                payload=framed.payload,
                byte_count=framed.byte_count,
                error_code=ResultCode.TIMEOUT,
            )

        value: Union[int, float, str, None] = framed.payload
        if kind is ResponseKind.INTEGER:
            value = parse_int(framed.payload)
        elif kind is ResponseKind.FLOAT:
            value = parse_float(framed.payload)

        if value is None:
            logger.warning(f"Unexpected reply to {text}: {framed.payload!r}, protocol mismatch?")
            self._protocol_logger.log_rx(framed.payload, OutcomeStatus.FORMAT_ERROR.value)
            self._resync()
            return TransactionOutcome(
                OutcomeStatus.FORMAT_ERROR,
                text,
                payload=framed.payload,
                byte_count=framed.byte_count,
                error_code=ResultCode.FORMAT_ERROR,
                overflow=framed.overflow,
            )

        self._protocol_logger.log_rx(framed.payload, OutcomeStatus.OK.value)
        return TransactionOutcome(
            OutcomeStatus.OK,
            text,
            payload=framed.payload,
            byte_count=framed.byte_count,
            value=value,
            overflow=framed.overflow,
        )

    def _resync(self) -> None:
        with self._lock:
            try:
                self._transport.reset_input_buffer()
            except OSError as e:
                logger.debug(f"Input reset after bad reply failed: {e}")
