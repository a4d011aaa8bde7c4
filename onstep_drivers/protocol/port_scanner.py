"""
Serial port enumeration and controller auto-discovery.

Provides utilities to list available serial ports and automatically
detect OCS or OnStep Aux controllers by probing with the identification
command of their vocabulary.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import serial.tools.list_ports

from onstep_drivers.protocol.engine import CommandEngine, TimeoutProfile
from onstep_drivers.protocol.lexicon import Lexicon
from onstep_drivers.protocol.logger import ProtocolLogger
from onstep_drivers.protocol.transport import PySerialTransport
from onstep_drivers.utils.exceptions import OnStepDriverError


logger = logging.getLogger(__name__)


@dataclass
class PortInfo:
    """Information about an available serial port."""

    name: str
    description: str
    hardware_id: str
    is_bluetooth: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "hardware_id": self.hardware_id,
            "is_bluetooth": self.is_bluetooth,
        }


@dataclass
class DiscoveredDevice:
    """A serial port that answered the identification command."""

    port: str
    product: str
    firmware_version: str
    description: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "port": self.port,
            "product": self.product,
            "firmware_version": self.firmware_version,
            "description": self.description,
        }


def list_available_ports(include_bluetooth: bool = True) -> List[PortInfo]:
    """
    List all available serial ports on the system.

    Args:
        include_bluetooth: If False, filter out Bluetooth virtual ports.

    Returns:
        List of PortInfo objects with port metadata, sorted by name.
    """
    ports = []

    for port in serial.tools.list_ports.comports():
        desc_lower = (port.description or "").lower()
        is_bluetooth = "bluetooth" in desc_lower or "bth" in desc_lower

        if not include_bluetooth and is_bluetooth:
            continue

        ports.append(
            PortInfo(
                name=port.device,
                description=port.description or "Unknown",
                hardware_id=port.hwid or "",
                is_bluetooth=is_bluetooth,
            )
        )

    ports.sort(key=lambda p: p.name)

    logger.debug(f"Found {len(ports)} serial ports")
    return ports


def scan_for_device(
    lexicon: Lexicon,
    timeout_seconds: float = 1.0,
    baudrate: int = 9600,
    skip_ports: Optional[List[str]] = None,
    include_bluetooth: bool = False,
) -> List[DiscoveredDevice]:
    """
    Scan all available serial ports for a controller of the given type.

    Args:
        lexicon: Vocabulary whose handshake identifies the controller.
        timeout_seconds: Reply timeout per port.
        baudrate: Serial baud rate.
        skip_ports: Port names to skip (e.g., already in use).
        include_bluetooth: If True, also scan Bluetooth ports.

    Returns:
        List of discovered controllers.
    """
    skip_ports = skip_ports or []
    discovered = []

    ports = list_available_ports(include_bluetooth=include_bluetooth)
    logger.info(f"Scanning {len(ports)} ports for {lexicon.product} controllers...")

    start_time = time.time()

    for port_info in ports:
        if port_info.name in skip_ports:
            logger.debug(f"Skipping {port_info.name}: in skip list")
            continue

        device = _probe_port(lexicon, port_info, timeout_seconds, baudrate)
        if device:
            discovered.append(device)

    elapsed_ms = int((time.time() - start_time) * 1000)
    logger.info(
        f"Scan complete: found {len(discovered)} {lexicon.product} device(s) in {elapsed_ms}ms"
    )

    if not discovered:
        logger.warning(f"No {lexicon.product} controller found on any serial port")

    return discovered


def _probe_port(
    lexicon: Lexicon, port_info: PortInfo, timeout: float, baudrate: int
) -> Optional[DiscoveredDevice]:
    """
    Probe a single port with the identification command.

    Returns:
        DiscoveredDevice if the expected product answered, None otherwise.
    """
    logger.debug(f"Probing {port_info.name} ({port_info.description})...")

    transport = PySerialTransport.for_serial(port_info.name, baudrate)
    # Scan traffic stays out of the shared protocol log
    engine = CommandEngine(transport, lexicon, protocol_logger=ProtocolLogger(max_messages=16))
    engine.set_timeout_profile(TimeoutProfile(int(timeout), int((timeout % 1) * 1_000_000)))

    try:
        transport.open()
        outcome = engine.execute(lexicon.handshake)
        if not outcome.ok or outcome.payload != lexicon.product:
            logger.debug(f"{port_info.name}: unexpected identification reply {outcome.payload!r}")
            return None

        firmware = engine.execute("firmware")
        version = firmware.payload if firmware.has_reply else ""
        logger.info(f"Found {lexicon.product} on {port_info.name} (firmware: {version or 'unknown'})")

        return DiscoveredDevice(
            port=port_info.name,
            product=lexicon.product,
            firmware_version=version,
            description=port_info.description,
        )

    except OnStepDriverError as e:
        logger.debug(f"Skipping {port_info.name}: {e}")
        return None

    finally:
        transport.close()


def find_first_device(
    lexicon: Lexicon,
    timeout_seconds: float = 1.0,
    baudrate: int = 9600,
    skip_ports: Optional[List[str]] = None,
) -> Optional[DiscoveredDevice]:
    """
    Find the first available controller of the given type.

    Returns:
        First discovered device, or None if none found.
    """
    devices = scan_for_device(
        lexicon,
        timeout_seconds=timeout_seconds,
        baudrate=baudrate,
        skip_ports=skip_ports,
    )

    if devices:
        if len(devices) > 1:
            logger.warning(
                f"Multiple {lexicon.product} devices found, using first one: {devices[0].port}"
            )
        return devices[0]

    return None
