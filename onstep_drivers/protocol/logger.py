"""
Protocol message logger for debugging controller communication.

Captures TX/RX/ERR messages with timestamps; exposed over the HTTP API.
"""

import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import List, Optional


@dataclass
class ProtocolMessage:
    """A single protocol message (TX, RX or ERR)."""
    timestamp: str
    direction: str  # "TX", "RX" or "ERR"
    text: str
    outcome: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def _printable(text: str) -> str:
    return "".join(c if 32 <= ord(c) < 127 else f"[{ord(c):02X}]" for c in text)


class ProtocolLogger:
    """
    Thread-safe logger for protocol messages.

    Maintains a circular buffer of messages with configurable max size.
    """

    DEFAULT_MAX_MESSAGES = 500

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES):
        """
        Initialize protocol logger.

        Args:
            max_messages: Maximum number of messages to keep in buffer.
        """
        self._messages: deque = deque(maxlen=max_messages)
        self._lock = threading.Lock()
        self._enabled = True
        self._tx_count = 0
        self._rx_count = 0
        self._error_count = 0

    @property
    def enabled(self) -> bool:
        """Check if logging is enabled."""
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        """Enable or disable logging."""
        self._enabled = value

    def _append(self, direction: str, text: str, outcome: Optional[str] = None,
                error: Optional[str] = None) -> None:
        self._messages.append(ProtocolMessage(
            timestamp=datetime.now().isoformat(timespec="milliseconds"),
            direction=direction,
            text=_printable(text),
            outcome=outcome,
            error=error,
        ))

    def log_tx(self, command: str) -> None:
        """
        Log a transmitted command.

        Args:
            command: Command text, e.g. ":FG#".
        """
        if not self._enabled:
            return

        with self._lock:
            self._tx_count += 1
            self._append("TX", command)

    def log_rx(self, payload: str, outcome: str) -> None:
        """
        Log a received reply.

        Args:
            payload: Framed reply text (terminator stripped).
            outcome: Transaction status name, e.g. "OK" or "FORMAT_ERROR".
        """
        if not self._enabled:
            return

        with self._lock:
            self._rx_count += 1
            error = None
            if outcome != "OK":
                self._error_count += 1
                error = f"{outcome} on reply"
            self._append("RX", payload, outcome=outcome, error=error)

    def log_error(self, error_msg: str, command: str = "") -> None:
        """
        Log an error with no reply (timeout, transport failure).

        Args:
            error_msg: Error description.
            command: Command the error relates to.
        """
        if not self._enabled:
            return

        with self._lock:
            self._error_count += 1
            self._append("ERR", command, error=error_msg)

    def get_messages(self, limit: int = 100) -> List[dict]:
        """
        Get recent messages.

        Args:
            limit: Maximum number of messages to return.

        Returns:
            List of message dictionaries, oldest first (chronological order).
        """
        with self._lock:
            messages = list(self._messages)
            if len(messages) > limit:
                messages = messages[-limit:]
            return [m.to_dict() for m in messages]

    def get_stats(self) -> dict:
        """Get logging statistics."""
        with self._lock:
            return {
                "total_messages": len(self._messages),
                "tx_count": self._tx_count,
                "rx_count": self._rx_count,
                "error_count": self._error_count,
                "max_messages": self._messages.maxlen,
                "enabled": self._enabled,
            }

    def clear(self) -> None:
        """Clear all logged messages."""
        with self._lock:
            self._messages.clear()
            self._tx_count = 0
            self._rx_count = 0
            self._error_count = 0


# Global instance
_logger: Optional[ProtocolLogger] = None


def get_protocol_logger() -> ProtocolLogger:
    """Get or create the global protocol logger."""
    global _logger
    if _logger is None:
        _logger = ProtocolLogger()
    return _logger
