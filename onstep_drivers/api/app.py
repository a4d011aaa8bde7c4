"""
FastAPI application factory.
"""

import logging
import itertools
import threading
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from onstep_drivers import __version__
from onstep_drivers.config.models import AppConfig
from onstep_drivers.api.models import make_response
from onstep_drivers.drivers.base import BaseDriver
from onstep_drivers.protocol.port_scanner import list_available_ports, scan_for_device
from onstep_drivers.protocol.interface import TransportKind
from onstep_drivers.protocol.transport import PySerialTransport


logger = logging.getLogger(__name__)

# Global server transaction ID counter (thread-safe)
_transaction_counter = itertools.count(1)
_transaction_lock = threading.Lock()


def get_next_transaction_id() -> int:
    """
    Get next server transaction ID (thread-safe).

    Returns:
        Incremented transaction ID.
    """
    with _transaction_lock:
        return next(_transaction_counter)


def create_app(config: AppConfig, driver: BaseDriver) -> FastAPI:
    """
    Create FastAPI application instance.

    Args:
        config: Application configuration.
        driver: OCS or OnStep Aux driver served by the API.

    Returns:
        Configured FastAPI app.
    """
    from onstep_drivers.api.routes import router

    app = FastAPI(
        title="OnStep Drivers",
        description="HTTP control API for OCS and OnStep Aux controllers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.config = config
    app.state.driver = driver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch all unhandled exceptions and return an error envelope."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        response = make_response(None, get_next_transaction_id(), exc)
        return JSONResponse(status_code=200, content=response.model_dump())

    # Port management endpoints
    @app.get("/api/v1/management/ports")
    async def get_available_ports():
        """List all serial ports on the system."""
        ports = list_available_ports(include_bluetooth=True)
        return {"Value": [p.to_dict() for p in ports]}

    @app.post("/api/v1/management/scan")
    def scan_ports(request: Request):
        """Scan serial ports for controllers of the configured type."""
        current = request.app.state.driver
        skip_ports = []
        current_port = None
        transport = current.transport
        if current.connected and isinstance(transport, PySerialTransport) and transport.kind == TransportKind.SERIAL:
            current_port = transport.description
            skip_ports.append(current_port)

        start_time = time.time()
        devices = scan_for_device(
            current.LEXICON,
            timeout_seconds=config.connection.scan_timeout_seconds,
            baudrate=config.connection.baud,
            skip_ports=skip_ports,
        )
        elapsed_ms = int((time.time() - start_time) * 1000)

        return {
            "Value": [d.to_dict() for d in devices],
            "scan_duration_ms": elapsed_ms,
            "current_port": current_port,
        }

    app.include_router(router)

    logger.info("FastAPI application created")
    return app
