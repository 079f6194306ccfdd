"""Tests for unifi_mcp.capabilities module."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import system_info_direct, system_info_envelope
from unifi_mcp._core.client import SYSTEM_INFO_PATH
from unifi_mcp._core.transport import TransportResponse
from unifi_mcp.capabilities import (
    CATEGORY_FEATURES,
    DEPRECATION_NOTICE,
    FEATURES,
    LEGACY_FIREWALL_PATHS,
    ZBF_PATHS,
    CapabilityDetector,
    FeatureRequirement,
    VersionRequirements,
    build_snapshot,
    feature_availability,
    feature_enabled,
    hardware_matches,
    hardware_profile,
    required_features,
)
from unifi_mcp.errors import (
    CapabilityDetectionFailure,
    FeatureNotSupported,
    HardwareIncompatible,
    ValidationError,
)
from unifi_mcp.types import OperationDescriptor, SystemInfo, ToolCategory


async def _noop(ctx, arguments):
    return None


def _descriptor(name, category=ToolCategory.DEVICES, requires_feature=None):
    return OperationDescriptor(
        name=name,
        description=name,
        category=category,
        handler=_noop,
        requires_feature=requires_feature,
    )


class ManualClock:
    """Wall clock for snapshot ageing."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class TestFeatureGates:
    """Tests for version and hardware gating."""

    REQUIREMENT = FeatureRequirement(
        key="feature_a",
        title="Feature A",
        minimum_version="9.0.0",
        compatible_hardware=("ModelA", "ModelB"),
    )

    def test_version_below_minimum_unavailable_on_any_hardware(self):
        assert feature_enabled(self.REQUIREMENT, "8.9.0", "ModelA") is False
        assert feature_enabled(self.REQUIREMENT, "8.9.0", "ModelC") is False

    def test_incompatible_hardware_unavailable(self):
        assert feature_enabled(self.REQUIREMENT, "9.1.0", "ModelC") is False

    def test_compatible_hardware_at_minimum_available(self):
        assert feature_enabled(self.REQUIREMENT, "9.0.0", "ModelA") is True

    def test_all_hardware_wildcard(self):
        requirement = FeatureRequirement(key="x", title="X", minimum_version="8.0.0")
        assert requirement.any_hardware is True
        assert feature_enabled(requirement, "8.0.0", "anything") is True

    def test_hardware_matches_substring(self):
        assert hardware_matches("UDM-Pro-Max", "UDM-Pro") is True

    def test_hardware_matches_normalized(self):
        assert hardware_matches("UCG Ultra", "UCG-Ultra") is True
        assert hardware_matches("ucg_max", "UCG-Max") is True

    def test_hardware_mismatch(self):
        assert hardware_matches("USG-3P", "UCG-Ultra") is False

    def test_version_thresholds_back_the_feature_table(self):
        thresholds = {name for name in vars(VersionRequirements) if name.isupper()}
        assert thresholds == {
            "ZBF_MINIMUM",
            "LEGACY_FIREWALL_DEPRECATED",
            "ADVANCED_STATS_MINIMUM",
            "RULE_LIMIT_DOUBLING",
        }
        assert FEATURES["zbf"].minimum_version == VersionRequirements.ZBF_MINIMUM
        assert FEATURES["legacy_firewall"].deprecated_in == VersionRequirements.LEGACY_FIREWALL_DEPRECATED
        assert FEATURES["advanced_stats"].minimum_version == VersionRequirements.ADVANCED_STATS_MINIMUM


class TestHardwareProfile:
    """Tests for hardware tier limits."""

    def test_base_tier(self):
        profile = hardware_profile("USG-3P", "8.4.59")
        assert profile.max_firewall_rules == 100
        assert profile.max_zones == 10
        assert profile.supports_advanced_firewall is False

    def test_advanced_tier_doubles_from_9(self):
        profile = hardware_profile("UCG-Ultra", "9.0.114")
        assert profile.max_firewall_rules == 1000
        assert profile.max_zones == 50
        assert profile.supports_advanced_firewall is True

    def test_pro_tier_before_9(self):
        profile = hardware_profile("UDM-Pro", "8.6.0")
        assert profile.max_firewall_rules == 300
        assert profile.max_zones == 30


class TestBuildSnapshot:
    """Tests for build_snapshot()."""

    def test_version_normalized(self):
        snapshot = build_snapshot(SystemInfo(version="9.0.114.25679", hardware_model="UCG-Ultra"))
        assert snapshot.version == "9.0.114"

    def test_zbf_on_compatible_9x(self):
        snapshot = build_snapshot(SystemInfo(version="9.0.114", hardware_model="UCG-Ultra"))

        assert snapshot.supports("zbf") is True
        assert all(path in snapshot.supported_paths for path in ZBF_PATHS)

    def test_legacy_paths_deprecated_not_removed_from_9(self):
        snapshot = build_snapshot(SystemInfo(version="9.0.114", hardware_model="UCG-Ultra"))

        assert snapshot.supports("legacy_firewall") is True
        for path in LEGACY_FIREWALL_PATHS:
            assert path not in snapshot.supported_paths
            assert snapshot.is_deprecated(path)

    def test_8x_has_legacy_supported_and_no_zbf(self):
        snapshot = build_snapshot(SystemInfo(version="8.4.59", hardware_model="UDM-Pro"))

        assert snapshot.supports("zbf") is False
        assert snapshot.deprecated_paths == ()
        assert all(path in snapshot.supported_paths for path in LEGACY_FIREWALL_PATHS)
        assert not any(path in snapshot.supported_paths for path in ZBF_PATHS)

    def test_zbf_requires_compatible_hardware(self):
        snapshot = build_snapshot(SystemInfo(version="9.1.0", hardware_model="USG-3P"))
        assert snapshot.supports("zbf") is False

    def test_flags_cover_every_feature(self):
        snapshot = build_snapshot(SystemInfo(version="9.0.0", hardware_model="UCG-Ultra"))
        assert set(snapshot.feature_flags) == set(FEATURES)

    def test_to_dict(self):
        snapshot = build_snapshot(SystemInfo(version="9.0.0", hardware_model="UCG-Ultra"))
        data = snapshot.to_dict()
        assert data["version"] == "9.0.0"
        assert data["hardware"]["model"] == "UCG-Ultra"
        assert isinstance(data["supported_paths"], list)


class TestFeatureAvailability:
    """Tests for feature_availability() and required_features()."""

    def test_unknown_feature(self):
        snapshot = build_snapshot(SystemInfo(version="9.0.0", hardware_model="UCG-Ultra"))
        result = feature_availability("teleport", snapshot)
        assert result.available is False
        assert result.reason == "Unknown feature: teleport"

    def test_version_reason_and_alternative(self):
        snapshot = build_snapshot(SystemInfo(version="8.4.59", hardware_model="UCG-Ultra"))
        result = feature_availability("zbf", snapshot)
        assert result.available is False
        assert "requires version 9.0.0" in result.reason
        assert result.alternative == "Use legacy firewall tools"
        assert result.minimum_version == "9.0.0"

    def test_hardware_reason(self):
        snapshot = build_snapshot(SystemInfo(version="9.1.0", hardware_model="USG-3P"))
        result = feature_availability("zbf", snapshot)
        assert result.available is False
        assert "not supported on USG-3P" in result.reason

    def test_deprecated_available(self):
        snapshot = build_snapshot(SystemInfo(version="9.0.0", hardware_model="UCG-Ultra"))
        result = feature_availability("legacy_firewall", snapshot)
        assert result.available is True
        assert result.deprecated is True
        assert result.reason == DEPRECATION_NOTICE

    def test_required_features_explicit_then_category(self):
        descriptor = _descriptor("x", ToolCategory.FIREWALL_ZBF, requires_feature="advanced_stats")
        assert required_features(descriptor) == ["advanced_stats", "zbf"]

    def test_required_features_not_duplicated(self):
        descriptor = _descriptor("x", ToolCategory.FIREWALL_LEGACY, requires_feature="legacy_firewall")
        assert required_features(descriptor) == ["legacy_firewall"]

    def test_category_features_table(self):
        assert CATEGORY_FEATURES[ToolCategory.FIREWALL_ZBF] == "zbf"
        assert ToolCategory.DEVICES not in CATEGORY_FEATURES


class TestCapabilityDetector:
    """Tests for CapabilityDetector."""

    @pytest.mark.asyncio
    async def test_detect_builds_snapshot(self, detector):
        snapshot = await detector.detect_capabilities()

        assert snapshot.version == "9.0.114"
        assert snapshot.hardware.model == "UCG-Ultra"
        assert detector.get_cached() is snapshot

    @pytest.mark.asyncio
    async def test_detect_from_canonical_envelope(self, detector, fake_transport):
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_envelope("8.4.59", "UDM-Pro"))

        snapshot = await detector.detect_capabilities()

        assert snapshot.version == "8.4.59"
        assert snapshot.supports("zbf") is False

    @pytest.mark.asyncio
    async def test_cached_within_validity(self, connected_client, fake_transport):
        """Two calls inside the validity window detect once."""
        detector = CapabilityDetector(connected_client)
        requests_before = len(fake_transport.calls_to(SYSTEM_INFO_PATH))

        first = await detector.detect_capabilities()
        second = await detector.detect_capabilities()

        assert first is second
        assert len(fake_transport.calls_to(SYSTEM_INFO_PATH)) == requests_before + 1

    @pytest.mark.asyncio
    async def test_stale_snapshot_rebuilt(self, connected_client, fake_transport):
        clock = ManualClock()
        detector = CapabilityDetector(connected_client, validity_seconds=3600, clock=clock)
        first = await detector.detect_capabilities()

        clock.now += timedelta(minutes=61)
        assert detector.get_cached() is None
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("9.1.0", "UCG-Ultra"))
        second = await detector.detect_capabilities()

        assert second is not first
        assert second.version == "9.1.0"
        assert second.detected_at == clock.now

    @pytest.mark.asyncio
    async def test_concurrent_misses_single_request(self, connected_client, fake_transport):
        detector = CapabilityDetector(connected_client)
        requests_before = len(fake_transport.calls_to(SYSTEM_INFO_PATH))

        results = await asyncio.gather(*(detector.detect_capabilities() for _ in range(5)))

        assert all(result is results[0] for result in results)
        assert len(fake_transport.calls_to(SYSTEM_INFO_PATH)) == requests_before + 1

    @pytest.mark.asyncio
    async def test_force_detection_bypasses_cache(self, connected_client, fake_transport):
        detector = CapabilityDetector(connected_client)
        first = await detector.detect_capabilities()

        second = await detector.force_detection()

        assert second is not first
        assert detector.get_cached() is second

    @pytest.mark.asyncio
    async def test_clear_cache(self, detector):
        await detector.detect_capabilities()
        detector.clear_cache()
        assert detector.get_cached() is None

    @pytest.mark.asyncio
    async def test_system_info_failure_raises_detection_failure(self, connected_client, fake_transport):
        fake_transport.add(
            "GET",
            SYSTEM_INFO_PATH,
            TransportResponse(200, body={"meta": {"rc": "error"}, "data": []}),
        )
        detector = CapabilityDetector(connected_client)

        with pytest.raises(CapabilityDetectionFailure) as exc_info:
            await detector.detect_capabilities()

        assert exc_info.value.detail == "Unable to detect UniFi capabilities"
        assert exc_info.value.details["original_error"] == "Failed to retrieve system information"
        assert detector.get_cached() is None

    @pytest.mark.asyncio
    async def test_validate_feature_passes(self, detector):
        await detector.validate_feature("zbf")

    @pytest.mark.asyncio
    async def test_validate_feature_version_too_low(self, detector, fake_transport):
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("8.4.59", "UCG-Ultra"))

        with pytest.raises(FeatureNotSupported) as exc_info:
            await detector.validate_feature("zbf")

        assert exc_info.value.required_version == "9.0.0"
        assert exc_info.value.current_version == "8.4.59"

    @pytest.mark.asyncio
    async def test_validate_unknown_feature(self, detector):
        with pytest.raises(ValidationError):
            await detector.validate_feature("teleport")

    @pytest.mark.asyncio
    async def test_validate_hardware_compatibility(self, detector, fake_transport):
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("9.1.0", "USG-3P"))

        with pytest.raises(HardwareIncompatible) as exc_info:
            await detector.validate_hardware_compatibility("zbf")

        assert exc_info.value.hardware_model == "USG-3P"
        assert "UCG-Ultra" in exc_info.value.compatible_models

    @pytest.mark.asyncio
    async def test_validate_hardware_wildcard_passes(self, detector, fake_transport):
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("9.1.0", "USG-3P"))
        await detector.validate_hardware_compatibility("advanced_stats")

    @pytest.mark.asyncio
    async def test_tool_availability(self, detector):
        descriptors = [
            _descriptor("plain"),
            _descriptor("zones", ToolCategory.FIREWALL_ZBF, "zbf"),
            _descriptor("rules", ToolCategory.FIREWALL_LEGACY, "legacy_firewall"),
            _descriptor("six_e", requires_feature="wifi_6e"),
        ]

        availability = await detector.get_tool_availability(descriptors)

        assert availability["plain"].available is True
        assert availability["zones"].available is True
        assert availability["rules"].available is True
        assert availability["rules"].deprecated is True
        assert availability["six_e"].available is False

    @pytest.mark.asyncio
    async def test_tool_availability_category_implied(self, detector, fake_transport):
        """A zone-firewall category operation is gated even without an explicit feature."""
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("8.4.59", "UCG-Ultra"))

        availability = await detector.get_tool_availability([
            _descriptor("zones", ToolCategory.FIREWALL_ZBF),
        ])

        assert availability["zones"].available is False
        assert availability["zones"].alternative == "Use legacy firewall tools"
