"""
Abstract interface for the byte link to the controller.

This interface allows transparent substitution between a serial line, a TCP
socket and the simulator.
"""

from abc import ABC, abstractmethod
from enum import Enum


class TransportKind(Enum):
    """Kind of physical link; selects the command timeout profile."""
    SERIAL = "serial"
    NETWORK = "network"


class Transport(ABC):
    """
    Abstract base class for a blocking, byte-oriented duplex channel.

    Read and write failures are reported by raising OSError
    (serial.SerialException is one). A read that times out is not an error:
    it returns whatever arrived, possibly nothing.
    """

    @property
    @abstractmethod
    def kind(self) -> TransportKind:
        """Physical link kind."""
        pass

    @property
    def description(self) -> str:
        """Human-readable endpoint name for logs."""
        return self.kind.value

    @abstractmethod
    def open(self) -> None:
        """
        Open the link.

        Raises:
            PortNotFoundError: If the port or endpoint does not exist.
            PortInUseError: If the port is held by another application.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the link."""
        pass

    @abstractmethod
    def is_open(self) -> bool:
        """Check if the link is open."""
        pass

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Write all bytes.

        Returns:
            Number of bytes written.
        """
        pass

    @abstractmethod
    def read(self, size: int, timeout: float) -> bytes:
        """
        Read up to size bytes, blocking at most timeout seconds.
        """
        pass

    @abstractmethod
    def read_until(self, terminator: bytes, size: int, timeout: float) -> bytes:
        """
        Read until terminator (included), size bytes or timeout, whichever first.
        """
        pass

    @abstractmethod
    def reset_input_buffer(self) -> None:
        """Discard bytes already received but not yet read."""
        pass
