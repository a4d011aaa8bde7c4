"""
pyserial-backed transports for serial lines and TCP sockets.

Both links go through serial.serial_for_url(): a device path opens a serial
port, a socket://host:port URL opens pyserial's TCP socket backend, so the
read/timeout semantics are identical on either link.
"""

import logging
from typing import Optional

import serial
from serial import SerialException

from onstep_drivers.protocol.interface import Transport, TransportKind
from onstep_drivers.utils.exceptions import PortInUseError, PortNotFoundError


logger = logging.getLogger(__name__)


class PySerialTransport(Transport):
    """
    Serial or network link to an OnStep/OCS controller.
    """

    # Serial settings fixed by the OnStep/OCS firmware
    DATA_BITS = serial.EIGHTBITS
    PARITY = serial.PARITY_NONE
    STOP_BITS = serial.STOPBITS_ONE

    WRITE_TIMEOUT_SECONDS = 2.0

    def __init__(self, url: str, kind: TransportKind, baudrate: int = 9600):
        """
        Args:
            url: Device path (e.g. /dev/ttyUSB0, COM3) or socket://host:port.
            kind: Link kind reported to the driver.
            baudrate: Serial baud rate (ignored on network links).
        """
        self._url = url
        self._kind = kind
        self._baudrate = baudrate
        self._port: Optional[serial.SerialBase] = None

    @classmethod
    def for_serial(cls, port: str, baudrate: int = 9600) -> "PySerialTransport":
        return cls(port, TransportKind.SERIAL, baudrate)

    @classmethod
    def for_network(cls, host: str, tcp_port: int) -> "PySerialTransport":
        return cls(f"socket://{host}:{tcp_port}", TransportKind.NETWORK)

    @property
    def kind(self) -> TransportKind:
        return self._kind

    @property
    def description(self) -> str:
        return self._url

    def open(self) -> None:
        if self.is_open():
            return

        logger.info(f"Opening {self._kind.value} link {self._url}")

        try:
            self._port = serial.serial_for_url(
                self._url,
                baudrate=self._baudrate,
                bytesize=self.DATA_BITS,
                parity=self.PARITY,
                stopbits=self.STOP_BITS,
                timeout=0,
                write_timeout=self.WRITE_TIMEOUT_SECONDS,
            )
        except SerialException as e:
            error_msg = str(e).lower()
            if "access" in error_msg or "permission" in error_msg or "in use" in error_msg or "busy" in error_msg:
                raise PortInUseError(f"{self._url} is already in use by another application") from e
            raise PortNotFoundError(f"Failed to open {self._url}: {e}") from e
        except ValueError as e:
            # Malformed socket:// URL
            raise PortNotFoundError(f"Invalid endpoint {self._url}: {e}") from e

        self._port.reset_input_buffer()
        self._port.reset_output_buffer()

    def close(self) -> None:
        if self._port and self._port.is_open:
            self._port.close()
            logger.info(f"Link {self._url} closed")
        self._port = None

    def is_open(self) -> bool:
        return self._port is not None and self._port.is_open

    def _require_port(self) -> serial.SerialBase:
        if not self.is_open():
            raise SerialException(f"{self._url} is not open")
        return self._port

    def write(self, data: bytes) -> int:
        port = self._require_port()
        written = port.write(data)
        port.flush()
        return written

    def read(self, size: int, timeout: float) -> bytes:
        port = self._require_port()
        port.timeout = timeout
        return bytes(port.read(size))

    def read_until(self, terminator: bytes, size: int, timeout: float) -> bytes:
        port = self._require_port()
        port.timeout = timeout
        return bytes(port.read_until(terminator, size))

    def reset_input_buffer(self) -> None:
        self._require_port().reset_input_buffer()
