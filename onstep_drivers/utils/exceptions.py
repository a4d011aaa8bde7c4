"""
Custom exception classes for the OnStep/OCS drivers.

Per-command failures (timeout, transport error, malformed reply) are reported
as TransactionOutcome values by the command engine, not as exceptions. The
classes below cover the lifecycle seams: opening a link, the handshake,
commands issued while disconnected and invalid parameters.
"""


class OnStepDriverError(Exception):
    """Base exception for all driver errors."""
    pass


class NotConnectedError(OnStepDriverError):
    """Raised when operation requires connection but the device is disconnected."""
    pass


class DriverError(OnStepDriverError):
    """General driver error."""
    pass


class InvalidValueError(OnStepDriverError):
    """Invalid parameter value."""
    pass


class ProtocolError(OnStepDriverError):
    """Protocol error (malformed command, unexpected reply shape)."""
    pass


class UnknownCommandError(ProtocolError):
    """Command name is not part of the driver's vocabulary."""
    pass


class PortNotFoundError(DriverError):
    """Serial port or network endpoint does not exist."""
    pass


class PortInUseError(DriverError):
    """Serial port is already open by another application."""
    pass


class HandshakeError(DriverError):
    """Device did not answer the identification command with the expected product."""
    pass


class LockTimeoutError(DriverError):
    """Failed to acquire the command sequencing guard within timeout."""
    pass
