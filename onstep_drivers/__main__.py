"""
Main entry point for the OnStep/OCS drivers.

Usage:
    python -m onstep_drivers [--config CONFIG_PATH] [--device ocs|onstep_aux] [--discover-only]
"""

import argparse
import json
import sys
import logging
import signal

import uvicorn

from onstep_drivers import __version__
from onstep_drivers.config.loader import load_config, ConfigurationError
from onstep_drivers.config.models import AppConfig
from onstep_drivers.utils.logging_setup import setup_logging
from onstep_drivers.utils.exceptions import OnStepDriverError
from onstep_drivers.api.app import create_app
from onstep_drivers.drivers.base import BaseDriver
from onstep_drivers.drivers.ocs import OCSDriver
from onstep_drivers.drivers.onstep_aux import OnStepAuxDriver
from onstep_drivers.simulator.mock_device import MockDevice
from onstep_drivers.protocol.interface import Transport, TransportKind
from onstep_drivers.protocol.transport import PySerialTransport
from onstep_drivers.protocol.port_scanner import find_first_device, list_available_ports


logger = logging.getLogger(__name__)

DRIVERS = {
    "ocs": OCSDriver,
    "onstep_aux": OnStepAuxDriver,
}

# Global resources for cleanup
driver_instance = None


def signal_handler(signum, frame):
    """Handle shutdown signals (SIGINT, SIGTERM)."""
    logger.info(f"Received signal {signum}, shutting down...")

    if driver_instance:
        driver_instance.disconnect()

    sys.exit(0)


def build_transport(config: AppConfig) -> Transport:
    """
    Create the link described by the configuration.

    Priority: simulator, network, explicit serial port, auto-discovered port.

    Raises:
        ConfigurationError: If no serial port is set and none can be found.
    """
    device = config.driver.device
    connection = config.connection

    if config.simulator.enabled:
        logger.info("Using SIMULATOR mode")
        kind = TransportKind.NETWORK if connection.kind == "network" else TransportKind.SERIAL
        return MockDevice(config.simulator, device=device, kind=kind)

    if connection.kind == "network":
        logger.info(f"Using network link {connection.host}:{connection.tcp_port}")
        return PySerialTransport.for_network(connection.host, connection.tcp_port)

    if connection.port:
        logger.info(f"Using manually specified port: {connection.port}")
        return PySerialTransport.for_serial(connection.port, connection.baud)

    if not connection.auto_discover:
        raise ConfigurationError(
            "No serial port specified and auto-discover is disabled. "
            "Set 'connection.port' in config.json or enable 'connection.auto_discover'"
        )

    logger.info(f"Auto-discovering {DRIVERS[device].NAME} controller...")
    available_ports = list_available_ports()
    if available_ports:
        logger.info(f"Available serial ports: {', '.join(p.name for p in available_ports)}")
    else:
        logger.warning("No serial ports found on system")

    found = find_first_device(
        DRIVERS[device].LEXICON,
        timeout_seconds=connection.scan_timeout_seconds,
        baudrate=connection.baud,
    )
    if not found:
        raise ConfigurationError(
            f"No {DRIVERS[device].NAME} controller found on any serial port. "
            "Connect the device or specify the port in config.json"
        )

    logger.info(f"Auto-discovered controller on {found.port} (firmware: {found.firmware_version})")
    return PySerialTransport.for_serial(found.port, connection.baud)


def build_driver(config: AppConfig) -> BaseDriver:
    """Create the configured driver over its transport (not yet connected)."""
    transport = build_transport(config)
    return DRIVERS[config.driver.device](transport)


def main():
    """Main application entry point."""
    global driver_instance

    parser = argparse.ArgumentParser(description="OnStep Aux / OCS controller drivers")
    parser.add_argument(
        "--config",
        type=str,
        default="config.json",
        help="Path to configuration file (default: config.json)"
    )
    parser.add_argument(
        "--device",
        choices=sorted(DRIVERS),
        help="Controller type (overrides driver.device in the config)"
    )
    parser.add_argument(
        "--discover-only",
        action="store_true",
        help="Connect, print the capability snapshot as JSON and exit"
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.device:
        config.driver.device = args.device

    setup_logging(config.logging)

    logger.info("=" * 60)
    logger.info(f"OnStep Drivers v{__version__} ({config.driver.device})")
    logger.info("=" * 60)

    try:
        driver_instance = build_driver(config)
        driver_instance.connect()
    except (ConfigurationError, OnStepDriverError) as e:
        logger.error(f"Failed to connect: {e}")
        sys.exit(1)

    if args.discover_only:
        print(json.dumps(driver_instance.capabilities.to_dict(), indent=2))
        driver_instance.disconnect()
        return

    if not config.server.enabled:
        logger.info("HTTP API disabled, nothing else to do")
        driver_instance.disconnect()
        return

    driver_instance.start_polling(config.driver.polling_interval_sec)

    app = create_app(config, driver_instance)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info(f"Starting API server on {config.server.ip}:{config.server.port}")
    logger.info("Press Ctrl+C to stop")

    try:
        uvicorn.run(
            app,
            host=config.server.ip,
            port=config.server.port,
            log_level=config.logging.level.lower(),
            access_log=False
        )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if driver_instance:
            driver_instance.disconnect()

        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
