"""
Configuration models using Pydantic for validation.

All configuration is loaded from config.json and validated at startup.
Timeout profiles are deliberately absent: they are fixed per transport kind
and selected at connect time.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


WEATHER_NAMES = ("temperature", "pressure", "humidity", "dew_point")


class ServerConfig(BaseModel):
    """HTTP control API configuration."""

    enabled: bool = Field(default=True, description="Serve the HTTP control API")
    ip: str = Field(default="0.0.0.0", description="IP address to bind to")
    port: int = Field(default=5000, ge=1, le=65535, description="HTTP port")


class ConnectionConfig(BaseModel):
    """Link to the controller: serial line or TCP socket."""

    kind: Literal["serial", "network"] = Field(
        default="serial", description="Transport kind (selects the timeout profile)"
    )
    port: str = Field(default="", description="Serial port name (e.g., /dev/ttyUSB0). Empty for auto-discover.")
    baud: int = Field(default=9600, description="Baud rate")
    host: str = Field(default="192.168.0.1", description="Controller IP address (network kind)")
    tcp_port: int = Field(default=9999, ge=1, le=65535, description="Controller TCP port (network kind)")
    auto_discover: bool = Field(
        default=True, description="Scan serial ports for the device when no port is given"
    )
    scan_timeout_seconds: float = Field(
        default=1.0, ge=0.1, le=10.0, description="Timeout per port during auto-discovery scan"
    )


class DriverConfig(BaseModel):
    """Which controller to drive and how often to poll it."""

    device: Literal["ocs", "onstep_aux"] = Field(default="onstep_aux", description="Controller type")
    polling_interval_sec: float = Field(
        default=2.0, ge=0.0, le=600.0, description="Background poll interval (0 disables polling)"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    file: Optional[str] = Field(
        default="onstep_drivers.log",
        description="Log file path (None for console only)"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v):
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class SimulatorConfig(BaseModel):
    """Simulated controller firmware configuration."""

    enabled: bool = Field(default=False, description="Use simulator instead of real hardware")
    firmware_version: str = Field(default="10.26g", description="Firmware version string reported")
    focusers: int = Field(default=1, ge=0, le=6, description="Number of defined focusers")
    rotator: Literal["none", "rotator", "derotator"] = Field(default="rotator")
    weather: List[str] = Field(
        default_factory=lambda: ["temperature", "pressure", "humidity"],
        description="Weather measurements with a sensor attached"
    )
    features: str = Field(default="11000001", description="Auxiliary feature bitmap (8 digits)")
    has_dome: bool = Field(default=False, description="OCS: dome present (else roll-off roof only)")
    response_latency_ms: int = Field(
        default=0, ge=0, le=5000, description="Artificial response delay (ms)"
    )
    inject_timeout: bool = Field(default=False, description="Never answer (timeout testing)")

    @field_validator("weather")
    @classmethod
    def validate_weather(cls, v):
        """Validate weather measurement names."""
        for name in v:
            if name not in WEATHER_NAMES:
                raise ValueError(f"Unknown weather measurement: {name}. Must be one of {list(WEATHER_NAMES)}")
        return v

    @field_validator("features")
    @classmethod
    def validate_features(cls, v):
        """Validate feature bitmap format."""
        if len(v) != 8 or any(c not in "01" for c in v):
            raise ValueError("Feature bitmap must be 8 digits of 0/1 (e.g., '11000001')")
        return v


class AppConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    server: ServerConfig = Field(default_factory=ServerConfig)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    driver: DriverConfig = Field(default_factory=DriverConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
