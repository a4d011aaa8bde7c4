"""
Driver base (Layer 2 - lifecycle and polling).

Owns the transport, the command engine and the capability snapshot, and
coordinates between the API and protocol layers.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from onstep_drivers.discovery.capabilities import Capabilities
from onstep_drivers.discovery.probe import discover
from onstep_drivers.protocol.engine import (
    DEFAULT_PROFILE,
    CommandEngine,
    TimeoutProfile,
    TransactionOutcome,
)
from onstep_drivers.protocol.guard import SequencingGuard
from onstep_drivers.protocol.interface import Transport, TransportKind
from onstep_drivers.protocol.lexicon import Lexicon, ResponseKind
from onstep_drivers.protocol.logger import ProtocolLogger
from onstep_drivers.utils.exceptions import NotConnectedError, OnStepDriverError


logger = logging.getLogger(__name__)


class BaseDriver(ABC):
    """
    Common connect/disconnect, raw command access and background polling.

    Subclasses set LEXICON, optionally USE_GUARD, and implement poll().
    """

    LEXICON: Lexicon
    USE_GUARD = False
    NAME = "controller"

    def __init__(self, transport: Transport, protocol_logger: Optional[ProtocolLogger] = None):
        """
        Initialize driver.

        Args:
            transport: Link to the controller (serial, network or simulator).
            protocol_logger: Message ring buffer. Defaults to the global one.
        """
        self._transport = transport
        self._guard = SequencingGuard() if self.USE_GUARD else None
        self._engine = CommandEngine(
            transport, self.LEXICON, guard=self._guard, protocol_logger=protocol_logger
        )

        # State
        self._connected = False
        self._capabilities = Capabilities.EMPTY
        self._state_lock = threading.Lock()
        self._last_state: Optional[Any] = None
        self._next_poll_at = 0.0

        # Background polling
        self._polling_thread: Optional[threading.Thread] = None
        self._stop_polling = threading.Event()

        logger.info(f"{self.NAME} driver initialized ({transport.description})")

    @property
    def engine(self) -> CommandEngine:
        return self._engine

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def transport_kind(self) -> TransportKind:
        return self._transport.kind

    @property
    def timeout_profile(self) -> TimeoutProfile:
        return self._engine.timeout_profile

    @property
    def connected(self) -> bool:
        """Check if the controller is connected."""
        return self._connected and self._transport.is_open()

    @property
    def capabilities(self) -> Capabilities:
        """Snapshot from the last discovery, EMPTY while disconnected."""
        return self._capabilities

    @property
    def last_state(self) -> Optional[Any]:
        """State published by the most recent poll()."""
        with self._state_lock:
            return self._last_state

    @property
    def polling(self) -> bool:
        return self._polling_thread is not None and self._polling_thread.is_alive()

    def connect(self) -> None:
        """
        Open the link, handshake and discover capabilities.

        Raises:
            PortNotFoundError: If the link cannot be opened.
            PortInUseError: If the serial port is held elsewhere.
            HandshakeError: If the controller does not identify correctly.
        """
        if self._connected:
            logger.warning("Already connected")
            return

        self._transport.open()
        try:
            capabilities = discover(self._engine, self.LEXICON, self._transport.kind)
        except OnStepDriverError:
            self._transport.close()
            raise

        self._capabilities = capabilities
        self._connected = True
        self._on_connected()

        logger.info(
            f"{self.NAME} connected on {self._transport.description} "
            f"(firmware: {capabilities.firmware_version or 'unknown'})"
        )

    def _on_connected(self) -> None:
        """Hook for per-connection state reset."""
        pass

    def disconnect(self) -> None:
        """Stop polling, close the link and forget the capabilities."""
        self.stop_polling()

        self._transport.close()
        self._connected = False
        self._capabilities = Capabilities.EMPTY
        self._engine.set_timeout_profile(DEFAULT_PROFILE)
        with self._state_lock:
            self._last_state = None

        logger.info(f"{self.NAME} disconnected")

    def _require_connected(self) -> None:
        if not self.connected:
            raise NotConnectedError(f"{self.NAME} not connected")

    # --- core contract ---

    def send_blind(self, command: Union[str, bytes]) -> bool:
        self._require_connected()
        return self._engine.send_blind(command)

    def send_expecting_digit(self, command: Union[str, bytes]) -> bool:
        self._require_connected()
        return self._engine.send_expecting_digit(command)

    def query(self, command: Union[str, bytes], kind: ResponseKind) -> TransactionOutcome:
        self._require_connected()
        return self._engine.query(command, kind)

    def send_raw(self, command: str, kind: ResponseKind = ResponseKind.OPAQUE) -> TransactionOutcome:
        """
        Debug pass-through for an arbitrary command.

        Raises:
            NotConnectedError: If not connected.
            ProtocolError: If the command is malformed.
        """
        self._require_connected()
        logger.info(f"Raw command: {command} ({kind.value})")
        return self._engine.query(command, kind)

    def _execute(self, name: str, *args) -> TransactionOutcome:
        self._require_connected()
        return self._engine.execute(name, *args)

    # --- polling ---

    @abstractmethod
    def poll(self) -> Any:
        """Read the controller's current state and publish it as last_state."""
        pass

    def _publish(self, state: Any) -> None:
        with self._state_lock:
            self._last_state = state

    def defer_polling(self, seconds: float) -> None:
        """Hold off the next background poll for at least seconds."""
        self._next_poll_at = max(self._next_poll_at, time.monotonic() + seconds)
        logger.debug(f"Next poll deferred by {seconds:.1f}s")

    @property
    def poll_deferred_for(self) -> float:
        """Seconds until polling may resume, 0 when not deferred."""
        return max(0.0, self._next_poll_at - time.monotonic())

    def start_polling(self, interval: float) -> None:
        """
        Start the background poller.

        Args:
            interval: Seconds between polls.

        Raises:
            NotConnectedError: If not connected.
        """
        self._require_connected()
        if self.polling:
            return
        if interval <= 0:
            logger.info("Background polling disabled")
            return

        self._stop_polling.clear()
        self._polling_thread = threading.Thread(
            target=self._poll_loop,
            args=(interval,),
            daemon=True,
        )
        self._polling_thread.start()
        logger.info(f"Background polling every {interval:.1f}s")

    def stop_polling(self) -> None:
        if self._polling_thread:
            self._stop_polling.set()
            if self._polling_thread is not threading.current_thread():
                self._polling_thread.join(timeout=5.0)
            self._polling_thread = None

    def _poll_loop(self, interval: float) -> None:
        logger.debug("Polling thread started")

        while True:
            delay = max(interval, self.poll_deferred_for)
            if self._stop_polling.wait(delay):
                break
            if not self.connected:
                break
            try:
                self.poll()
            except OnStepDriverError as e:
                logger.warning(f"Poll failed, will retry: {e}")

        logger.debug("Polling thread stopped")
