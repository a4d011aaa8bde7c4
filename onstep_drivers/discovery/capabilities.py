"""
Capability snapshot produced by discovery at connect time.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


WEATHER_MEASUREMENTS = ("temperature", "pressure", "humidity", "dew_point")


class FeatureKind(Enum):
    """Auxiliary feature slot type, by firmware type code."""
    SWITCH = 1
    DEW_HEATER = 3
    MOMENTARY_SWITCH = 5
    COVER_SWITCH = 6

    @classmethod
    def from_code(cls, code: Optional[int]) -> Optional["FeatureKind"]:
        """Map a type code to a kind; unknown codes leave the slot unclassified."""
        try:
            return cls(code)
        except ValueError:
            return None

    @property
    def is_switch(self) -> bool:
        return self is not FeatureKind.DEW_HEATER


@dataclass(frozen=True)
class FeatureSlot:
    """One of the eight auxiliary feature slots."""
    index: int
    present: bool
    name: str = ""
    type_code: Optional[int] = None
    kind: Optional[FeatureKind] = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "present": self.present,
            "name": self.name,
            "type_code": self.type_code,
            "kind": self.kind.name if self.kind else None,
        }


@dataclass(frozen=True)
class Capabilities:
    """
    Immutable snapshot of what the connected controller supports.

    Replaced as a whole after a successful handshake; EMPTY means unknown
    or disconnected.
    """
    product: str = ""
    firmware_version: str = ""
    firmware_supported: bool = False
    focuser_count: int = 0
    has_rotator: bool = False
    has_derotator: bool = False
    weather: Mapping[str, bool] = field(default_factory=dict, hash=False)
    features: Tuple[FeatureSlot, ...] = ()
    # OCS
    has_dome: bool = False
    roof_pre_motion: float = 0.0
    roof_post_motion: float = 0.0
    has_thermostat: bool = False

    def __post_init__(self):
        # Read-only copy, so the snapshot cannot change under its readers
        object.__setattr__(self, "weather", MappingProxyType(dict(self.weather)))

    @property
    def has_focuser(self) -> bool:
        return self.focuser_count > 0

    @property
    def has_weather(self) -> bool:
        return any(self.weather.values())

    @property
    def has_switch(self) -> bool:
        return any(slot.present for slot in self.features)

    def is_weather_enabled(self, measurement: str) -> bool:
        return self.weather.get(measurement, False)

    def to_dict(self) -> dict:
        return {
            "product": self.product,
            "firmware_version": self.firmware_version,
            "firmware_supported": self.firmware_supported,
            "focuser_count": self.focuser_count,
            "has_focuser": self.has_focuser,
            "has_rotator": self.has_rotator,
            "has_derotator": self.has_derotator,
            "weather": dict(self.weather),
            "has_weather": self.has_weather,
            "features": [slot.to_dict() for slot in self.features],
            "has_dome": self.has_dome,
            "roof_pre_motion": self.roof_pre_motion,
            "roof_post_motion": self.roof_post_motion,
            "has_thermostat": self.has_thermostat,
        }


Capabilities.EMPTY = Capabilities()
