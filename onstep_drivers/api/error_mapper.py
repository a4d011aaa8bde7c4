"""
Map driver exceptions to API error codes.
"""

from typing import Tuple
from onstep_drivers.utils.exceptions import (
    NotConnectedError,
    DriverError,
    InvalidValueError,
    ProtocolError,
    UnknownCommandError,
)


ERROR_NOT_IMPLEMENTED = 0x400  # 1024
ERROR_INVALID_VALUE = 0x402  # 1026
ERROR_NOT_CONNECTED = 0x407  # 1031
ERROR_DRIVER_ERROR = 0x500  # 1280


def map_exception(exception: Exception) -> Tuple[int, str]:
    """
    Map exception to error code and message.

    Args:
        exception: Python exception.

    Returns:
        Tuple of (ErrorNumber, ErrorMessage).
    """
    if isinstance(exception, NotConnectedError):
        return (ERROR_NOT_CONNECTED, str(exception))

    if isinstance(exception, UnknownCommandError):
        return (ERROR_NOT_IMPLEMENTED, str(exception))

    if isinstance(exception, (InvalidValueError, ProtocolError)):
        return (ERROR_INVALID_VALUE, str(exception))

    if isinstance(exception, DriverError):
        return (ERROR_DRIVER_ERROR, str(exception))

    return (ERROR_DRIVER_ERROR, f"Internal error: {type(exception).__name__}: {exception}")
