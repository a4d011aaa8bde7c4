"""
Capability discovery run once per connection.

The sequence is linear: select the timeout profile, handshake, read the
firmware version, then probe each optional subsystem independently. Only a
failed handshake aborts; every other probe that times out or returns
garbage simply leaves its capability absent.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from onstep_drivers.discovery.capabilities import Capabilities, FeatureKind, FeatureSlot
from onstep_drivers.protocol.engine import CommandEngine, profile_for
from onstep_drivers.protocol.framing import parse_float, parse_int
from onstep_drivers.protocol.interface import TransportKind
from onstep_drivers.protocol.lexicon import Lexicon
from onstep_drivers.utils.exceptions import HandshakeError


logger = logging.getLogger(__name__)

FEATURE_SLOTS = 8

# Replies meaning "no sensor attached"
ABSENT_MEASUREMENT_REPLIES = ("0", "N/A", "nan")

_VERSION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def discover(engine: CommandEngine, lexicon: Lexicon, transport_kind: TransportKind) -> Capabilities:
    """
    Identify the controller and probe its optional subsystems.

    Args:
        engine: Engine over an open transport.
        lexicon: Vocabulary of the expected controller.
        transport_kind: Link kind, selects the timeout profile.

    Returns:
        Capabilities snapshot.

    Raises:
        HandshakeError: If the controller does not identify as lexicon.product.
    """
    engine.set_timeout_profile(profile_for(transport_kind, lexicon))

    with engine.sequence():
        _handshake(engine, lexicon)
        firmware, supported = _probe_firmware(engine, lexicon)

        focuser_count = _probe_focusers(engine, lexicon)
        has_rotator, has_derotator = _probe_rotator(engine, lexicon)
        weather = _probe_weather(engine, lexicon)
        features = _probe_features(engine, lexicon)

        has_dome = _probe_dome(engine, lexicon)
        pre_motion, post_motion = _probe_roof_delays(engine, lexicon)
        has_thermostat = _probe_present(engine, lexicon, "thermostat_status")

    capabilities = Capabilities(
        product=lexicon.product,
        firmware_version=firmware,
        firmware_supported=supported,
        focuser_count=focuser_count,
        has_rotator=has_rotator,
        has_derotator=has_derotator,
        weather=weather,
        features=tuple(features),
        has_dome=has_dome,
        roof_pre_motion=pre_motion,
        roof_post_motion=post_motion,
        has_thermostat=has_thermostat,
    )

    logger.info(
        f"{lexicon.product} capabilities: firmware={firmware or 'unknown'}, "
        f"focusers={focuser_count}, rotator={has_rotator}, "
        f"weather={[name for name, on in weather.items() if on]}, "
        f"features={sum(1 for slot in features if slot.present)}, dome={has_dome}"
    )
    return capabilities


def _handshake(engine: CommandEngine, lexicon: Lexicon) -> None:
    outcome = engine.execute(lexicon.handshake)
    if not outcome.ok or outcome.payload != lexicon.product:
        logger.error(
            f"{lexicon.product} handshake failed: {outcome.status.value}, reply was {outcome.payload!r}"
        )
        raise HandshakeError(
            f"Expected '{lexicon.product}' identification, got {outcome.payload!r} ({outcome.status.value})"
        )
    logger.info(f"{lexicon.product} handshake established")


def _probe_firmware(engine: CommandEngine, lexicon: Lexicon) -> Tuple[str, bool]:
    outcome = engine.execute("firmware")
    if not outcome.has_reply:
        logger.error(f"{lexicon.product} firmware version not retrieved")
        return "", lexicon.min_firmware is None

    version = outcome.payload
    if lexicon.min_firmware is None:
        return version, True

    match = _VERSION_RE.match(version)
    if not match or float(match.group(1)) < lexicon.min_firmware:
        logger.warning(
            f"{lexicon.product} firmware {version} is older than this driver expects "
            f"({lexicon.min_firmware}). Behaviour is unknown."
        )
        return version, False
    return version, True


def _probe_focusers(engine: CommandEngine, lexicon: Lexicon) -> int:
    if "focuser_count" not in lexicon:
        return 0
    outcome = engine.execute("focuser_count")
    if outcome.ok and outcome.value > 0:
        logger.debug(f"{outcome.value} focuser(s) found")
        return outcome.value
    logger.debug("Focuser not found")
    return 0


def _probe_rotator(engine: CommandEngine, lexicon: Lexicon) -> Tuple[bool, bool]:
    if "rotator_defined" not in lexicon:
        return False, False
    outcome = engine.execute("rotator_defined")
    if outcome.ok and outcome.payload[:1] in ("D", "R", "1"):
        derotator = outcome.payload[:1] == "D"
        logger.debug(f"Rotator found (de-rotator: {derotator})")
        return True, derotator
    logger.debug("Rotator not found")
    return False, False


def measurement_present(payload: str, byte_count: int) -> bool:
    """A weather reply indicates an attached sensor."""
    return byte_count > 1 and payload != "" and payload not in ABSENT_MEASUREMENT_REPLIES


def _probe_weather(engine: CommandEngine, lexicon: Lexicon) -> Dict[str, bool]:
    weather = {}
    for measurement, command in lexicon.weather.items():
        outcome = engine.execute(command)
        weather[measurement] = outcome.ok and measurement_present(outcome.payload, outcome.byte_count)
        logger.debug(f"Weather {measurement}: {'present' if weather[measurement] else 'absent'}")
    return weather


def _probe_features(engine: CommandEngine, lexicon: Lexicon) -> List[FeatureSlot]:
    if "features" not in lexicon:
        return []

    outcome = engine.execute("features")
    bitmap = outcome.payload.strip()
    if not outcome.has_reply or len(bitmap) != FEATURE_SLOTS or any(c not in "01" for c in bitmap):
        if outcome.ok:
            logger.warning(f"Invalid feature bitmap: {outcome.payload!r}")
        return []

    slots = []
    for i, flag in enumerate(bitmap):
        index = i + 1
        if flag != "1":
            slots.append(FeatureSlot(index=index, present=False))
            continue
        slots.append(_probe_feature_slot(engine, index))
    return slots


def _probe_feature_slot(engine: CommandEngine, index: int) -> FeatureSlot:
    outcome = engine.execute("feature_info", index)
    if not outcome.has_reply:
        logger.warning(f"Failed to get definition of feature {index}")
        return FeatureSlot(index=index, present=True)

    name, _, type_text = outcome.payload.partition(",")
    name = "" if name == "N/A" else name
    type_code = parse_int(type_text) if type_text != "N/A" else None
    kind = FeatureKind.from_code(type_code)
    logger.debug(f"Feature {index}: name={name!r}, type={type_code}")
    return FeatureSlot(index=index, present=True, name=name, type_code=type_code, kind=kind)


def _probe_dome(engine: CommandEngine, lexicon: Lexicon) -> bool:
    if "dome_status" not in lexicon:
        return False
    outcome = engine.execute("dome_status")
    present = outcome.has_reply and outcome.payload != "0"
    logger.debug(f"{lexicon.product} {'has' if present else 'does not have'} a dome")
    return present


def _probe_roof_delays(engine: CommandEngine, lexicon: Lexicon) -> Tuple[float, float]:
    if "roof_delays" not in lexicon:
        return 0.0, 0.0
    outcome = engine.execute("roof_delays")
    pre, _, post = outcome.payload.partition(",")
    pre_motion: Optional[float] = parse_float(pre)
    post_motion: Optional[float] = parse_float(post)
    if not outcome.has_reply or pre_motion is None or post_motion is None:
        logger.warning(f"Roof delays not retrieved (reply {outcome.payload!r})")
        return 0.0, 0.0
    return pre_motion, post_motion


def _probe_present(engine: CommandEngine, lexicon: Lexicon, name: str) -> bool:
    if name not in lexicon:
        return False
    return engine.execute(name).has_reply
