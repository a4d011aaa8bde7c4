"""
Pydantic models for the HTTP control API.
"""

from typing import Any, Optional
from pydantic import BaseModel, Field

from onstep_drivers.protocol.lexicon import ResponseKind


class ApiResponse(BaseModel):
    """
    Response envelope shared by every endpoint.

    Errors are reported in-band (HTTP 200 with ErrorNumber != 0).
    """
    Value: Any = Field(None, description="Response value (type varies by endpoint)")
    ServerTransactionID: int = Field(description="Server transaction ID (auto-incremented)")
    ErrorNumber: int = Field(0, description="Error code (0 = success, non-zero = error)")
    ErrorMessage: str = Field("", description="Error message (empty string if no error)")


class RawCommandRequest(BaseModel):
    """Debug pass-through of one command."""
    command: str = Field(description="Full command, e.g. ':GVP#'")
    kind: ResponseKind = Field(ResponseKind.OPAQUE, description="Expected response shape")


class FocuserMoveRequest(BaseModel):
    position: Optional[int] = Field(None, description="Absolute target in steps")
    steps: Optional[int] = Field(None, description="Relative move in steps (used when position is absent)")


def make_response(value: Any, server_id: int = 0, error: Optional[Exception] = None) -> ApiResponse:
    """
    Helper to create an API response.

    Args:
        value: Response value (None if error).
        server_id: Server transaction ID.
        error: Exception (if any).

    Returns:
        ApiResponse instance.
    """
    if error is None:
        return ApiResponse(Value=value, ServerTransactionID=server_id)

    from onstep_drivers.api.error_mapper import map_exception
    error_number, error_message = map_exception(error)
    return ApiResponse(
        Value=None,
        ServerTransactionID=server_id,
        ErrorNumber=error_number,
        ErrorMessage=error_message,
    )
