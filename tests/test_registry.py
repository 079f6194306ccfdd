"""Tests for unifi_mcp.registry module."""

from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock

from conftest import system_info_direct
from unifi_mcp._core.client import SYSTEM_INFO_PATH
from unifi_mcp._core.transport import TransportResponse
from unifi_mcp.errors import CapabilityDetectionFailure, ResourceNotFound, ValidationError
from unifi_mcp.registry import ToolRegistry, compute_dependencies
from unifi_mcp.types import (
    Dependency,
    DependencyKind,
    ErrorKind,
    OperationDescriptor,
    ToolCategory,
    ToolOutput,
)


async def echo(ctx, arguments):
    return {"echo": arguments}


async def explode(ctx, arguments):
    raise RuntimeError("handler exploded")


async def not_found(ctx, arguments):
    raise ResourceNotFound("Device 'abc' not found")


async def with_warning(ctx, arguments):
    return ToolOutput(data={"ok": True}, warnings=["be careful"])


def make_descriptor(
    name,
    category=ToolCategory.DEVICES,
    handler=echo,
    requires_connection=True,
    requires_feature=None,
    input_schema=None,
):
    kwargs = {}
    if input_schema is not None:
        kwargs["input_schema"] = input_schema
    return OperationDescriptor(
        name=name,
        description=f"{name} operation",
        category=category,
        handler=handler,
        requires_connection=requires_connection,
        requires_feature=requires_feature,
        **kwargs,
    )


class TestComputeDependencies:
    """Tests for compute_dependencies()."""

    def test_connection_only(self):
        assert compute_dependencies(make_descriptor("a")) == (Dependency(DependencyKind.CONNECTION),)

    def test_no_dependencies(self):
        assert compute_dependencies(make_descriptor("a", requires_connection=False)) == ()

    def test_explicit_and_category_feature(self):
        descriptor = make_descriptor("a", ToolCategory.FIREWALL_ZBF, requires_feature="advanced_stats")
        assert compute_dependencies(descriptor) == (
            Dependency(DependencyKind.CONNECTION),
            Dependency(DependencyKind.FEATURE, "advanced_stats"),
            Dependency(DependencyKind.CATEGORY_FEATURE, "zbf"),
        )

    def test_category_feature_not_repeated(self):
        descriptor = make_descriptor("a", ToolCategory.FIREWALL_ZBF, requires_feature="zbf")
        assert compute_dependencies(descriptor) == (
            Dependency(DependencyKind.CONNECTION),
            Dependency(DependencyKind.FEATURE, "zbf"),
        )


class TestRegistration:
    """Tests for register / unregister / batch."""

    def test_register_returns_entry(self, registry):
        entry = registry.register(make_descriptor("a"))

        assert entry.name == "a"
        assert entry.enabled is True
        assert entry.usage_count == 0
        assert "a" in registry
        assert len(registry) == 1

    def test_register_replaces_existing(self, registry):
        registry.register(make_descriptor("a", ToolCategory.DEVICES))
        registry.register(make_descriptor("a", ToolCategory.CLIENTS))

        assert len(registry) == 1
        assert registry.list_by_category(ToolCategory.DEVICES) == []
        assert [d.name for d in registry.list_by_category(ToolCategory.CLIENTS)] == ["a"]

    def test_register_rejects_invalid_schema(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            registry.register(make_descriptor("bad", input_schema={"type": "nonsense"}))

        assert exc_info.value.field == "input_schema"
        assert "bad" not in registry

    def test_register_batch_counts(self, registry):
        successful, failed = registry.register_batch([
            make_descriptor("a"),
            make_descriptor("bad", input_schema={"type": 42}),
            make_descriptor("b"),
        ])

        assert (successful, failed) == (2, 1)
        assert len(registry) == 2

    def test_unregister(self, registry):
        registry.register(make_descriptor("a"))

        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        assert registry.list_by_category(ToolCategory.DEVICES) == []

    def test_set_enabled_unknown(self, registry):
        assert registry.set_enabled("missing", False) is False

    def test_disabled_hidden_from_listings(self, registry):
        registry.register(make_descriptor("a"))
        registry.register(make_descriptor("b"))
        registry.set_enabled("b", False)

        assert [d.name for d in registry.list_all()] == ["a"]
        assert [d.name for d in registry.list_all_for_documentation()] == ["a", "b"]
        assert registry.get("b") is None
        assert registry.get_entry("b").enabled is False

    def test_cleanup(self, registry):
        registry.register(make_descriptor("a"))
        registry.cleanup()
        assert len(registry) == 0
        assert registry.stats().total_operations == 0


class TestStats:
    """Tests for registry statistics."""

    def _register_five(self, registry):
        for name in ("d1", "d2", "d3"):
            registry.register(make_descriptor(name, ToolCategory.DEVICES))
        for name in ("c1", "c2"):
            registry.register(make_descriptor(name, ToolCategory.CLIENTS))

    def test_five_operations_two_categories(self, registry):
        self._register_five(registry)

        stats = registry.stats()

        assert stats.total_operations == 5
        assert stats.enabled_operations == 5
        assert stats.disabled_operations == 0
        assert stats.category_counts["devices"] == 3
        assert stats.category_counts["clients"] == 2
        assert sum(stats.category_counts.values()) == 5

    def test_disable_one(self, registry):
        self._register_five(registry)
        registry.set_enabled("c2", False)

        stats = registry.stats()

        assert stats.total_operations == 5
        assert stats.enabled_operations == 4
        assert stats.disabled_operations == 1

    @pytest.mark.asyncio
    async def test_invocations_recorded(self, registry, connected_client):
        registry.register(make_descriptor("a"))

        await registry.invoke("a")
        await registry.invoke("a")

        entry = registry.get_entry("a")
        assert entry.usage_count == 2
        assert entry.error_count == 0
        assert entry.last_used_at is not None
        assert registry.stats().total_invocations == 2

    def test_usage_weighted_average_latency(self, registry):
        first = registry.register(make_descriptor("a"))
        second = registry.register(make_descriptor("b"))
        now = datetime.now(timezone.utc)
        first.record_usage(10.0, success=True, now=now)
        first.record_usage(30.0, success=True, now=now)
        second.record_usage(50.0, success=False, now=now)

        stats = registry.stats()

        assert first.average_latency_ms == pytest.approx(20.0)
        assert stats.total_invocations == 3
        assert stats.average_latency_ms == pytest.approx(30.0)


class TestInvokePreconditions:
    """Tests for the ordered precondition pipeline of invoke()."""

    @pytest.mark.asyncio
    async def test_not_found(self, registry):
        result = await registry.invoke("missing")

        assert result.success is False
        assert result.error_kind == ErrorKind.OPERATION_NOT_FOUND
        assert result.error_message == "Tool 'missing' not found"

    @pytest.mark.asyncio
    async def test_not_found_checked_before_connection(self, registry, client):
        assert client.is_connected is False
        result = await registry.invoke("missing")
        assert result.error_kind == ErrorKind.OPERATION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_disabled_checked_before_connection(self, registry, client):
        registry.register(make_descriptor("a"))
        registry.set_enabled("a", False)

        result = await registry.invoke("a")

        assert result.error_kind == ErrorKind.OPERATION_DISABLED
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_connection_required(self, registry, fake_transport):
        registry.register(make_descriptor("a"))

        result = await registry.invoke("a")

        assert result.error_kind == ErrorKind.CONNECTION_REQUIRED
        # Dispatcher never connects on the caller's behalf
        assert fake_transport.calls == []

    @pytest.mark.asyncio
    async def test_no_connection_needed(self, registry):
        registry.register(make_descriptor("a", requires_connection=False))

        result = await registry.invoke("a", {"x": 1})

        assert result.success is True
        assert result.data == {"echo": {"x": 1}}

    @pytest.mark.asyncio
    async def test_feature_unavailable(self, registry, connected_client, fake_transport):
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("8.4.59", "UCG-Ultra"))
        registry.register(make_descriptor("zones", ToolCategory.FIREWALL_ZBF, requires_feature="zbf"))

        result = await registry.invoke("zones")

        assert result.success is False
        assert result.error_kind == ErrorKind.FEATURE_UNAVAILABLE
        assert result.error_details["feature"] == "zbf"
        assert result.error_details["original_kind"] == "FEATURE_NOT_SUPPORTED"
        assert result.error_details["required_version"] == "9.0.0"

    @pytest.mark.asyncio
    async def test_feature_detection_failure_wrapped(self, registry, connected_client, fake_transport):
        fake_transport.add("GET", SYSTEM_INFO_PATH, TransportResponse(200, body={"meta": {"rc": "error"}, "data": []}))
        registry.register(make_descriptor("stats", requires_feature="advanced_stats"))

        result = await registry.invoke("stats")

        assert result.error_kind == ErrorKind.FEATURE_UNAVAILABLE
        assert result.error_details["original_kind"] == "CAPABILITY_DETECTION_FAILURE"

    @pytest.mark.asyncio
    async def test_category_feature_dependency(self, registry, connected_client, fake_transport):
        """Category-implied feature is checked even without requires_feature."""
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("8.4.59", "UCG-Ultra"))
        registry.register(make_descriptor("zones", ToolCategory.FIREWALL_ZBF))

        result = await registry.invoke("zones")

        assert result.error_kind == ErrorKind.FEATURE_UNAVAILABLE
        assert result.error_details["dependency"] == "category_feature"

    @pytest.mark.asyncio
    async def test_dependency_failure_not_counted(self, registry, connected_client, fake_transport):
        """A failed category-feature dependency is terminal and leaves stats untouched."""
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("8.4.59", "UCG-Ultra"))
        registry.register(make_descriptor("zones", ToolCategory.FIREWALL_ZBF))

        await registry.invoke("zones")

        entry = registry.get_entry("zones")
        assert entry.usage_count == 0
        assert entry.error_count == 0
        assert entry.last_used_at is None
        assert registry.stats().total_invocations == 0

    @pytest.mark.asyncio
    async def test_precondition_failures_not_counted(self, registry, client):
        registry.register(make_descriptor("a"))

        await registry.invoke("a")

        assert registry.get_entry("a").usage_count == 0


class TestInvokeExecution:
    """Tests for argument validation and handler execution."""

    @pytest.mark.asyncio
    async def test_success_result(self, registry, connected_client):
        registry.register(make_descriptor("a"))

        result = await registry.invoke("a", {"k": "v"})

        assert result.success is True
        assert result.data == {"echo": {"k": "v"}}
        assert result.execution_time_ms >= 0
        data = result.to_dict()
        assert data["success"] is True
        assert "error" not in data
        assert "warnings" not in data
        assert set(data["metadata"]) == {"execution_time_ms", "timestamp"}

    @pytest.mark.asyncio
    async def test_handler_receives_context(self, registry, connected_client, detector):
        handler = AsyncMock(return_value={"ok": True})
        registry.register(make_descriptor("a", handler=handler))

        await registry.invoke("a", {"x": 1})

        ctx, arguments = handler.call_args.args
        assert ctx.client is connected_client
        assert ctx.detector is detector
        assert arguments == {"x": 1}

    @pytest.mark.asyncio
    async def test_untyped_exception_never_escapes(self, registry, connected_client):
        registry.register(make_descriptor("boom", handler=explode))

        result = await registry.invoke("boom")

        assert result.success is False
        assert result.error_kind == ErrorKind.EXECUTION_ERROR
        assert result.error_message == "handler exploded"
        assert result.error_details == {"error_type": "RuntimeError"}
        entry = registry.get_entry("boom")
        assert entry.usage_count == 1
        assert entry.error_count == 1

    @pytest.mark.asyncio
    async def test_typed_handler_error_keeps_kind(self, registry, connected_client):
        registry.register(make_descriptor("nf", handler=not_found))

        result = await registry.invoke("nf")

        assert result.error_kind == ErrorKind.RESOURCE_NOT_FOUND
        assert result.to_dict()["error"]["code"] == "RESOURCE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_argument_validation(self, registry, connected_client):
        handler = AsyncMock()
        registry.register(make_descriptor(
            "typed",
            handler=handler,
            input_schema={
                "type": "object",
                "properties": {"limit": {"type": "integer", "minimum": 1}},
                "required": ["limit"],
            },
        ))

        result = await registry.invoke("typed", {"limit": 0})

        assert result.error_kind == ErrorKind.VALIDATION_ERROR
        assert result.error_details["field"] == "limit"
        handler.assert_not_called()
        assert registry.get_entry("typed").error_count == 1

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, registry, connected_client):
        registry.register(make_descriptor(
            "typed",
            input_schema={"type": "object", "properties": {"id": {"type": "string"}}, "required": ["id"]},
        ))

        result = await registry.invoke("typed", {})

        assert result.error_kind == ErrorKind.VALIDATION_ERROR
        assert "'id' is a required property" in result.error_message

    @pytest.mark.asyncio
    async def test_handler_warnings_surface(self, registry, connected_client):
        registry.register(make_descriptor("warn", handler=with_warning))

        result = await registry.invoke("warn")

        assert result.data == {"ok": True}
        assert result.warnings == ["be careful"]
        assert result.to_dict()["warnings"] == ["be careful"]

    @pytest.mark.asyncio
    async def test_deprecated_feature_warning(self, registry, connected_client):
        """Legacy firewall operations still run on 9.x but carry a warning."""
        registry.register(make_descriptor(
            "rules",
            ToolCategory.FIREWALL_LEGACY,
            requires_feature="legacy_firewall",
        ))

        result = await registry.invoke("rules")

        assert result.success is True
        assert len(result.warnings) == 1
        assert "Legacy Firewall is deprecated in version 9.0.114" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_no_warning_before_deprecation(self, registry, connected_client, fake_transport):
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("8.4.59", "UDM-Pro"))
        registry.register(make_descriptor(
            "rules",
            ToolCategory.FIREWALL_LEGACY,
            requires_feature="legacy_firewall",
        ))

        result = await registry.invoke("rules")

        assert result.success is True
        assert result.warnings == []


class TestCatalog:
    """Tests for availability-aware listings."""

    def _register_mixed(self, registry):
        registry.register(make_descriptor("devices"))
        registry.register(make_descriptor("zones", ToolCategory.FIREWALL_ZBF, requires_feature="zbf"))
        registry.register(make_descriptor("rules", ToolCategory.FIREWALL_LEGACY, requires_feature="legacy_firewall"))
        registry.register(make_descriptor("hidden"))
        registry.set_enabled("hidden", False)

    @pytest.mark.asyncio
    async def test_external_catalog_disconnected_lists_all_enabled(self, registry, fake_transport):
        self._register_mixed(registry)

        catalog = await registry.list_for_external_catalog()

        assert [entry["name"] for entry in catalog] == ["devices", "zones", "rules"]
        assert set(catalog[0]) == {"name", "description", "inputSchema"}
        assert fake_transport.calls == []

    @pytest.mark.asyncio
    async def test_external_catalog_connected_filters(self, registry, connected_client, fake_transport):
        fake_transport.add("GET", SYSTEM_INFO_PATH, system_info_direct("8.4.59", "UCG-Ultra"))
        self._register_mixed(registry)

        catalog = await registry.list_for_external_catalog()

        assert [entry["name"] for entry in catalog] == ["devices", "rules"]

    @pytest.mark.asyncio
    async def test_list_available_falls_back_on_detection_failure(self, registry, detector):
        self._register_mixed(registry)
        detector.get_tool_availability = AsyncMock(
            side_effect=CapabilityDetectionFailure("Unable to detect UniFi capabilities")
        )

        available = await registry.list_available()

        assert [d.name for d in available] == ["devices", "zones", "rules"]

    @pytest.mark.asyncio
    async def test_filter_by_features(self, registry, connected_client):
        self._register_mixed(registry)

        groups = await registry.filter_by_features()

        assert groups == {
            "available": ["devices", "zones"],
            "unavailable": [],
            "deprecated": ["rules"],
        }

    @pytest.mark.asyncio
    async def test_filter_by_features_propagates_failure(self, registry, detector):
        self._register_mixed(registry)
        detector.get_tool_availability = AsyncMock(side_effect=CapabilityDetectionFailure("boom"))

        with pytest.raises(CapabilityDetectionFailure):
            await registry.filter_by_features()
