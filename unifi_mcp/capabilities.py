"""
Capability and version detection for UniFi controllers.

Turns the controller's system-info response into an immutable
CapabilitySnapshot and answers feature-level and operation-level
availability queries against it.

A feature is usable only when both gates pass:
- Version gate: the normalized controller version is at least the
  feature's minimum version
- Hardware gate: the hardware model matches one of the feature's
  compatible models, or the feature is marked for all hardware

Usage:
    detector = CapabilityDetector(client)
    snapshot = await detector.detect_capabilities()

    if snapshot.supports("zbf"):
        zones = await client.get(ZONES_PATH)

    await detector.validate_feature("zbf")  # raises FeatureNotSupported
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from unifi_mcp._core.version import is_at_least, normalize_version
from unifi_mcp.errors import (
    CapabilityDetectionFailure,
    FeatureNotSupported,
    HardwareIncompatible,
    UniFiMCPError,
    ValidationError,
)
from unifi_mcp.types import (
    CapabilitySnapshot,
    HardwareProfile,
    OperationAvailability,
    OperationDescriptor,
    SystemInfo,
    ToolCategory,
    utcnow,
)

if TYPE_CHECKING:
    from unifi_mcp._core.client import UniFiClient

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_SECONDS = 60 * 60

ALL_HARDWARE = "all"


# =============================================================================
# Version / Feature Tables
# =============================================================================


class VersionRequirements:
    ZBF_MINIMUM = "9.0.0"
    LEGACY_FIREWALL_DEPRECATED = "9.0.0"
    ADVANCED_STATS_MINIMUM = "8.5.0"
    RULE_LIMIT_DOUBLING = "9.0.0"


@dataclass(frozen=True)
class FeatureRequirement:
    """
    Gating rule for one named feature.

    Attributes:
        key: Feature key used by descriptors and validate_feature()
        title: Human-readable feature name
        minimum_version: Lowest controller version providing the feature
        compatible_hardware: Model names, or ("all",) for any hardware
        deprecated_in: Version from which the feature is deprecated (still usable)
        alternative: Suggestion shown when the feature is unavailable
    """
    key: str
    title: str
    minimum_version: str
    compatible_hardware: Tuple[str, ...] = (ALL_HARDWARE,)
    deprecated_in: Optional[str] = None
    alternative: Optional[str] = None

    @property
    def any_hardware(self) -> bool:
        return ALL_HARDWARE in self.compatible_hardware


FEATURES: Dict[str, FeatureRequirement] = {
    "zbf": FeatureRequirement(
        key="zbf",
        title="Zone-Based Firewall",
        minimum_version=VersionRequirements.ZBF_MINIMUM,
        compatible_hardware=("UCG-Ultra", "UCG-Max", "UDM-Pro", "UDM-Base"),
        alternative="Use legacy firewall tools",
    ),
    "legacy_firewall": FeatureRequirement(
        key="legacy_firewall",
        title="Legacy Firewall",
        minimum_version="6.0.0",
        deprecated_in=VersionRequirements.LEGACY_FIREWALL_DEPRECATED,
        alternative="Use Zone-Based Firewall tools",
    ),
    "advanced_threat_detection": FeatureRequirement(
        key="advanced_threat_detection",
        title="Advanced Threat Detection",
        minimum_version="8.5.0",
        compatible_hardware=("UCG-Ultra", "UCG-Max", "UDM-Pro"),
    ),
    "wifi_6e": FeatureRequirement(
        key="wifi_6e",
        title="WiFi 6E",
        minimum_version="7.5.0",
        compatible_hardware=("U6-Enterprise", "U7-Pro"),
    ),
    "advanced_stats": FeatureRequirement(
        key="advanced_stats",
        title="Advanced Statistics",
        minimum_version=VersionRequirements.ADVANCED_STATS_MINIMUM,
    ),
}

# Features implied by membership in a category
CATEGORY_FEATURES: Dict[ToolCategory, str] = {
    ToolCategory.FIREWALL_ZBF: "zbf",
    ToolCategory.FIREWALL_LEGACY: "legacy_firewall",
}

DEPRECATION_NOTICE = "Available but deprecated. Consider using Zone-Based Firewall tools."

BASE_PATHS = (
    "/api/system",
    "/api/s/{site}/stat/device",
    "/api/s/{site}/stat/sta",
    "/api/s/{site}/rest/networkconf",
    "/api/s/{site}/stat/sites",
    "/api/s/{site}/stat/event",
)
ZBF_PATHS = (
    "/api/s/{site}/rest/firewallzone",
    "/api/s/{site}/rest/firewallzonepolicy",
    "/api/s/{site}/rest/simpleappblock",
)
LEGACY_FIREWALL_PATHS = (
    "/api/s/{site}/rest/firewallrule",
    "/api/s/{site}/rest/firewallgroup",
)
ADVANCED_STATS_PATHS = (
    "/api/s/{site}/stat/device-stats",
    "/api/s/{site}/stat/user-stats",
    "/api/s/{site}/stat/health",
)

ADVANCED_GATEWAYS = ("UCG-Ultra", "UCG-Max")
PRO_GATEWAYS = ("UDM-Pro", "USG-Pro-4")

BASE_MAX_FIREWALL_RULES = 100
BASE_MAX_ZONES = 10
ADVANCED_TIER_MULTIPLIER = 5
PRO_TIER_MULTIPLIER = 3


# =============================================================================
# Derivation
# =============================================================================


def _normalize_model(model: str) -> str:
    return "".join(ch for ch in model.lower() if ch not in "-_" and not ch.isspace())


def hardware_matches(actual: str, required: str) -> bool:
    """
    Check whether a hardware model satisfies one required model name.

    Matches on plain substring, or on substring after lowercasing and
    stripping dashes, underscores and whitespace ("UCG Ultra" matches "UCG-Ultra").
    """
    if required == ALL_HARDWARE:
        return True
    return required in actual or _normalize_model(required) in _normalize_model(actual)


def hardware_compatible(requirement: FeatureRequirement, model: str) -> bool:
    if requirement.any_hardware:
        return True
    return any(hardware_matches(model, required) for required in requirement.compatible_hardware)


def feature_enabled(requirement: FeatureRequirement, version: str, model: str) -> bool:
    """Both the version gate and the hardware gate must pass."""
    return is_at_least(version, requirement.minimum_version) and hardware_compatible(requirement, model)


def hardware_profile(model: str, version: str) -> HardwareProfile:
    """Tiered limits for a hardware model; the rule limit doubles from 9.0.0."""
    multiplier = 1
    if any(tier_model in model for tier_model in ADVANCED_GATEWAYS):
        multiplier = ADVANCED_TIER_MULTIPLIER
    elif any(tier_model in model for tier_model in PRO_GATEWAYS):
        multiplier = PRO_TIER_MULTIPLIER

    max_rules = BASE_MAX_FIREWALL_RULES * multiplier
    if is_at_least(version, VersionRequirements.RULE_LIMIT_DOUBLING):
        max_rules *= 2

    return HardwareProfile(
        model=model,
        supports_advanced_firewall=multiplier > 1,
        max_firewall_rules=max_rules,
        max_zones=BASE_MAX_ZONES * multiplier,
    )


def build_snapshot(system_info: SystemInfo, detected_at: Optional[datetime] = None) -> CapabilitySnapshot:
    """
    Derive a CapabilitySnapshot from controller system information.

    Legacy firewall paths move from supported to deprecated once the
    version crosses the deprecation threshold; they are never dropped.
    """
    version = normalize_version(system_info.version)
    model = system_info.hardware_model

    flags = {
        key: feature_enabled(requirement, version, model)
        for key, requirement in FEATURES.items()
    }

    supported: List[str] = list(BASE_PATHS)
    deprecated: List[str] = []

    if flags["zbf"]:
        supported.extend(ZBF_PATHS)

    if flags["legacy_firewall"]:
        if is_at_least(version, VersionRequirements.LEGACY_FIREWALL_DEPRECATED):
            deprecated.extend(LEGACY_FIREWALL_PATHS)
        else:
            supported.extend(LEGACY_FIREWALL_PATHS)

    if is_at_least(version, VersionRequirements.ADVANCED_STATS_MINIMUM):
        supported.extend(ADVANCED_STATS_PATHS)

    return CapabilitySnapshot(
        version=version,
        feature_flags=flags,
        supported_paths=tuple(supported),
        deprecated_paths=tuple(deprecated),
        hardware=hardware_profile(model, version),
        detected_at=detected_at or utcnow(),
    )


def required_features(descriptor: OperationDescriptor) -> List[str]:
    """Explicit and category-implied feature keys of a descriptor, in check order."""
    features: List[str] = []
    if descriptor.requires_feature:
        features.append(descriptor.requires_feature)
    implied = CATEGORY_FEATURES.get(descriptor.category)
    if implied and implied not in features:
        features.append(implied)
    return features


def is_feature_deprecated(feature: str, snapshot: CapabilitySnapshot) -> bool:
    requirement = FEATURES.get(feature)
    if requirement is None or requirement.deprecated_in is None:
        return False
    return is_at_least(snapshot.version, requirement.deprecated_in)


def feature_availability(feature: str, snapshot: CapabilitySnapshot) -> OperationAvailability:
    """Availability of a single feature against a snapshot."""
    requirement = FEATURES.get(feature)
    if requirement is None:
        return OperationAvailability(available=False, reason=f"Unknown feature: {feature}")

    if not snapshot.supports(feature):
        if not is_at_least(snapshot.version, requirement.minimum_version):
            reason = (
                f"{requirement.title} requires version {requirement.minimum_version} "
                f"(current: {snapshot.version})"
            )
        else:
            reason = f"{requirement.title} is not supported on {snapshot.hardware.model}"
        return OperationAvailability(
            available=False,
            reason=reason,
            alternative=requirement.alternative,
            minimum_version=requirement.minimum_version,
        )

    if is_feature_deprecated(feature, snapshot):
        return OperationAvailability(available=True, reason=DEPRECATION_NOTICE, deprecated=True)

    return OperationAvailability(available=True)


# =============================================================================
# Detector
# =============================================================================


class CapabilityDetector:
    """
    Cached capability detection for one controller.

    Concurrent cache misses collapse into a single request. The snapshot is
    replaced wholesale on re-detection and never mutated.

    Attributes:
        client: UniFiClient used for the system-info request
        validity_seconds: Snapshot lifetime before it is considered stale
    """

    def __init__(
        self,
        client: "UniFiClient",
        validity_seconds: float = DEFAULT_VALIDITY_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.client = client
        self.validity_seconds = validity_seconds
        self._clock = clock or utcnow
        self._snapshot: Optional[CapabilitySnapshot] = None
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def get_cached(self) -> Optional[CapabilitySnapshot]:
        """Return the snapshot if it is still within its validity window."""
        snapshot = self._snapshot
        if snapshot is None or snapshot.is_stale(self._clock(), self.validity_seconds):
            return None
        return snapshot

    async def detect_capabilities(self) -> CapabilitySnapshot:
        """
        Return the cached snapshot, probing the controller when it is missing or stale.

        Raises:
            CapabilityDetectionFailure: If the system-info request fails
        """
        snapshot = self.get_cached()
        if snapshot is not None:
            logger.debug("Returning cached capabilities")
            return snapshot

        async with self._get_lock():
            # Re-check after waiting: a concurrent caller may have finished the detection
            snapshot = self.get_cached()
            if snapshot is not None:
                return snapshot
            return await self._detect_locked()

    async def _detect_locked(self) -> CapabilitySnapshot:
        logger.info("Detecting UniFi capabilities")
        try:
            system_info = await self.client.get_system_info()
        except UniFiMCPError as e:
            logger.warning(f"Failed to detect capabilities: {e.detail}")
            raise CapabilityDetectionFailure(
                "Unable to detect UniFi capabilities",
                details={"original_error": e.detail, "original_kind": e.kind.value},
            ) from e

        snapshot = build_snapshot(system_info, detected_at=self._clock())
        self._snapshot = snapshot

        if snapshot.deprecated_paths:
            logger.warning(
                f"Legacy firewall is deprecated in version {snapshot.version} "
                f"(since {VersionRequirements.LEGACY_FIREWALL_DEPRECATED})"
            )
        logger.info(
            f"Capabilities detected: version={snapshot.version} "
            f"zbf={snapshot.supports('zbf')} model={snapshot.hardware.model}"
        )
        return snapshot

    def clear_cache(self) -> None:
        self._snapshot = None
        logger.debug("Capability cache cleared")

    async def force_detection(self) -> CapabilitySnapshot:
        """Rebuild the snapshot immediately, bypassing the validity window."""
        async with self._get_lock():
            self._snapshot = None
            return await self._detect_locked()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_tool_availability(
        self,
        descriptors: Iterable[OperationDescriptor],
    ) -> Dict[str, OperationAvailability]:
        """
        Compute availability for each descriptor against the current snapshot.

        Operations without a feature requirement are always available.
        The first unavailable feature decides the entry; a deprecated but
        usable feature marks the entry deprecated.

        Raises:
            CapabilityDetectionFailure: If detection is needed and fails
        """
        snapshot = await self.detect_capabilities()
        availability: Dict[str, OperationAvailability] = {}

        for descriptor in descriptors:
            result = OperationAvailability(available=True)
            for feature in required_features(descriptor):
                feature_result = feature_availability(feature, snapshot)
                if not feature_result.available:
                    result = feature_result
                    break
                if feature_result.deprecated:
                    result = feature_result
            availability[descriptor.name] = result

        return availability

    async def validate_feature(self, feature: str) -> None:
        """
        Raise unless the feature is usable on the connected controller.

        Raises:
            ValidationError: Unknown feature key
            FeatureNotSupported: Version or hardware gate fails
            CapabilityDetectionFailure: Detection failed
        """
        requirement = FEATURES.get(feature)
        if requirement is None:
            raise ValidationError(f"Unknown feature: {feature}", field="feature")

        snapshot = await self.detect_capabilities()
        if not snapshot.supports(feature):
            raise FeatureNotSupported(
                requirement.title,
                required_version=requirement.minimum_version,
                current_version=snapshot.version,
            )

    async def validate_hardware_compatibility(self, feature: str) -> None:
        """
        Raise unless the controller hardware is in the feature's compatible set.

        Raises:
            ValidationError: Unknown feature key
            HardwareIncompatible: Hardware gate fails
        """
        requirement = FEATURES.get(feature)
        if requirement is None:
            raise ValidationError(f"Unknown feature for hardware validation: {feature}", field="feature")

        snapshot = await self.detect_capabilities()
        if not hardware_compatible(requirement, snapshot.hardware.model):
            raise HardwareIncompatible(
                feature,
                snapshot.hardware.model,
                list(requirement.compatible_hardware),
            )
