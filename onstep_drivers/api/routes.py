"""
HTTP control API endpoints for the OCS and OnStep Aux drivers.

Every endpoint answers with the ApiResponse envelope; driver errors are
reported in ErrorNumber/ErrorMessage, never as HTTP errors.
"""

import logging
from fastapi import APIRouter, Depends, Query, Request
from onstep_drivers import __version__
from onstep_drivers.api.models import ApiResponse, FocuserMoveRequest, RawCommandRequest, make_response
from onstep_drivers.api.app import get_next_transaction_id
from onstep_drivers.drivers.base import BaseDriver
from onstep_drivers.drivers.ocs import OCSDriver
from onstep_drivers.drivers.onstep_aux import OnStepAuxDriver
from onstep_drivers.utils.exceptions import InvalidValueError, UnknownCommandError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["driver"])

ROOF_ACTIONS = ("open", "close", "stop")


def get_driver(request: Request) -> BaseDriver:
    """Dependency to get the driver from app.state."""
    driver = getattr(request.app.state, 'driver', None)
    if driver is None:
        raise RuntimeError("Driver not initialized")
    return driver


@router.get("/health")
async def health_check():
    """Simple health check endpoint (no dependencies)."""
    return {"status": "ok", "message": "Server is running", "version": __version__}


@router.get("/status", response_model=ApiResponse)
async def get_status(driver: BaseDriver = Depends(get_driver)):
    """Connection, link and capability summary."""
    value = {
        "connected": driver.connected,
        "device": driver.NAME,
        "transport": driver.transport_kind.value,
        "link": driver.transport.description,
        "timeout_profile": str(driver.timeout_profile),
        "polling": driver.polling,
        "capabilities": driver.capabilities.to_dict(),
    }
    return make_response(value, get_next_transaction_id())


@router.put("/connect", response_model=ApiResponse)
def put_connect(request: Request, driver: BaseDriver = Depends(get_driver)):
    """Open the link, handshake, discover and start background polling."""
    try:
        driver.connect()
        driver.start_polling(request.app.state.config.driver.polling_interval_sec)
        logger.info(f"{driver.NAME} connected via API")
        return make_response(driver.capabilities.to_dict(), get_next_transaction_id())
    except Exception as e:
        logger.error(f"Error in /connect: {e}")
        return make_response(None, get_next_transaction_id(), e)


@router.put("/disconnect", response_model=ApiResponse)
def put_disconnect(driver: BaseDriver = Depends(get_driver)):
    """Close the link."""
    try:
        driver.disconnect()
        logger.info(f"{driver.NAME} disconnected via API")
        return make_response(None, get_next_transaction_id())
    except Exception as e:
        logger.error(f"Error in /disconnect: {e}")
        return make_response(None, get_next_transaction_id(), e)


@router.get("/poll", response_model=ApiResponse)
def get_poll(driver: BaseDriver = Depends(get_driver)):
    """Read the controller's state now."""
    try:
        state = driver.poll()
        return make_response(state.to_dict(), get_next_transaction_id())
    except Exception as e:
        logger.error(f"Error in /poll: {e}")
        return make_response(None, get_next_transaction_id(), e)


@router.get("/state", response_model=ApiResponse)
async def get_state(driver: BaseDriver = Depends(get_driver)):
    """State published by the most recent (background) poll, None before the first."""
    state = driver.last_state
    return make_response(state.to_dict() if state else None, get_next_transaction_id())


@router.put("/command", response_model=ApiResponse)
def put_command(body: RawCommandRequest, driver: BaseDriver = Depends(get_driver)):
    """Debug pass-through: send one command and return the transaction outcome."""
    try:
        outcome = driver.send_raw(body.command, body.kind)
        return make_response(outcome.to_dict(), get_next_transaction_id())
    except Exception as e:
        logger.error(f"Error in /command: {e}")
        return make_response(None, get_next_transaction_id(), e)


# Protocol log

@router.get("/protocol/log", response_model=ApiResponse)
async def get_protocol_log(
    limit: int = Query(100, ge=1, le=1000),
    driver: BaseDriver = Depends(get_driver)
):
    """Recent TX/RX/ERR messages, oldest first."""
    protocol_logger = driver.engine.protocol_logger
    value = {
        "messages": protocol_logger.get_messages(limit),
        "stats": protocol_logger.get_stats(),
    }
    return make_response(value, get_next_transaction_id())


@router.delete("/protocol/log", response_model=ApiResponse)
async def clear_protocol_log(driver: BaseDriver = Depends(get_driver)):
    driver.engine.protocol_logger.clear()
    return make_response(None, get_next_transaction_id())


# OCS

@router.put("/roof/{action}", response_model=ApiResponse)
def put_roof(action: str, driver: BaseDriver = Depends(get_driver)):
    """Open, close or stop the roll-off roof."""
    try:
        if not isinstance(driver, OCSDriver):
            raise UnknownCommandError(f"{driver.NAME} has no roof")
        if action not in ROOF_ACTIONS:
            raise InvalidValueError(f"Unknown roof action '{action}', expected one of {list(ROOF_ACTIONS)}")

        if action == "open":
            sent = driver.open_roof()
        elif action == "close":
            sent = driver.close_roof()
        else:
            sent = driver.stop_roof()
        return make_response(sent, get_next_transaction_id())
    except Exception as e:
        logger.error(f"Error in /roof/{action}: {e}")
        return make_response(None, get_next_transaction_id(), e)


# OnStep Aux

@router.put("/focuser/move", response_model=ApiResponse)
def put_focuser_move(body: FocuserMoveRequest, driver: BaseDriver = Depends(get_driver)):
    """
    Move the focuser.

    An absolute position takes precedence; otherwise a relative move of
    steps is issued.
    """
    try:
        if not isinstance(driver, OnStepAuxDriver):
            raise UnknownCommandError(f"{driver.NAME} has no focuser")

        if body.position is not None:
            accepted = driver.move_focuser_absolute(body.position)
        elif body.steps is not None:
            accepted = driver.move_focuser_relative(body.steps)
        else:
            raise InvalidValueError("Either position or steps is required")
        return make_response(accepted, get_next_transaction_id())
    except Exception as e:
        logger.error(f"Error in /focuser/move: {e}")
        return make_response(None, get_next_transaction_id(), e)
