"""
Tool registry and dispatcher.

Holds the catalog of invocable operations, gates execution behind
connection and feature preconditions, runs handlers and records
per-operation statistics.

invoke() never raises for a failed invocation: every failure, typed or
not, comes back as an InvocationResult with success=False.

Usage:
    registry = ToolRegistry(client, detector)
    registry.register(OperationDescriptor(
        name="unifi_get_devices",
        description="List adopted devices",
        category=ToolCategory.DEVICES,
        handler=get_devices,
    ))

    result = await registry.invoke("unifi_get_devices", {"status": "online"})
    if not result.success:
        print(result.error_kind, result.error_message)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from unifi_mcp.capabilities import FEATURES, CATEGORY_FEATURES, is_feature_deprecated
from unifi_mcp.errors import (
    ConnectionRequired,
    ExecutionError,
    FeatureUnavailable,
    OperationDisabled,
    OperationNotFound,
    UniFiMCPError,
    ValidationError,
)
from unifi_mcp.types import (
    Dependency,
    DependencyKind,
    InvocationResult,
    OperationDescriptor,
    RegistryEntry,
    RegistryStats,
    ToolCategory,
    ToolContext,
    ToolOutput,
    utcnow,
)

if TYPE_CHECKING:
    from unifi_mcp._core.client import UniFiClient
    from unifi_mcp.capabilities import CapabilityDetector

logger = logging.getLogger(__name__)


def compute_dependencies(descriptor: OperationDescriptor) -> Tuple[Dependency, ...]:
    """
    Static precondition list of an operation.

    Order: connection, explicit feature, category-implied feature.
    """
    dependencies: List[Dependency] = []
    if descriptor.requires_connection:
        dependencies.append(Dependency(DependencyKind.CONNECTION))
    if descriptor.requires_feature:
        dependencies.append(Dependency(DependencyKind.FEATURE, descriptor.requires_feature))
    implied = CATEGORY_FEATURES.get(descriptor.category)
    if implied and implied != descriptor.requires_feature:
        dependencies.append(Dependency(DependencyKind.CATEGORY_FEATURE, implied))
    return tuple(dependencies)


class ToolRegistry:
    """
    Catalog of operations and the invocation pipeline.

    Attributes:
        client: UniFiClient handed to handlers through ToolContext
        detector: CapabilityDetector used for feature gating
    """

    def __init__(self, client: "UniFiClient", detector: "CapabilityDetector") -> None:
        self.client = client
        self.detector = detector
        self._entries: Dict[str, RegistryEntry] = {}
        self._categories: Dict[ToolCategory, List[str]] = {category: [] for category in ToolCategory}
        self._validators: Dict[str, Draft7Validator] = {}

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, descriptor: OperationDescriptor) -> RegistryEntry:
        """
        Insert or replace an operation.

        Raises:
            ValidationError: If the descriptor's input schema is not a valid JSON schema
        """
        try:
            Draft7Validator.check_schema(descriptor.input_schema)
        except SchemaError as e:
            raise ValidationError(
                f"Invalid input schema for '{descriptor.name}': {e.message}",
                field="input_schema",
            ) from e

        existing = self._entries.get(descriptor.name)
        if existing is not None:
            logger.warning(
                f"Tool '{descriptor.name}' already registered, replacing "
                f"(previous registration {existing.registered_at.isoformat()})"
            )
            self._remove_from_category(existing.descriptor.category, descriptor.name)

        entry = RegistryEntry(
            descriptor=descriptor,
            dependencies=compute_dependencies(descriptor),
        )
        self._entries[descriptor.name] = entry
        self._validators[descriptor.name] = Draft7Validator(descriptor.input_schema)
        self._categories[descriptor.category].append(descriptor.name)

        logger.info(
            f"Tool '{descriptor.name}' registered (category={descriptor.category.value}, "
            f"dependencies={[d.kind.value for d in entry.dependencies]})"
        )
        return entry

    def register_batch(self, descriptors: Iterable[OperationDescriptor]) -> Tuple[int, int]:
        """
        Register several operations, continuing past individual failures.

        Returns:
            (successful, failed) counts
        """
        started = time.perf_counter()
        successful = 0
        failed = 0
        for descriptor in descriptors:
            try:
                self.register(descriptor)
                successful += 1
            except UniFiMCPError as e:
                failed += 1
                logger.error(f"Failed to register tool '{descriptor.name}': {e.detail}")

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Batch tool registration completed: {successful} successful, "
            f"{failed} failed ({duration_ms:.1f}ms)"
        )
        return successful, failed

    def unregister(self, name: str) -> bool:
        """Remove an operation. Returns False if it was not registered."""
        entry = self._entries.pop(name, None)
        if entry is None:
            return False
        self._remove_from_category(entry.descriptor.category, name)
        self._validators.pop(name, None)
        logger.info(f"Tool '{name}' unregistered")
        return True

    def _remove_from_category(self, category: ToolCategory, name: str) -> None:
        names = self._categories.get(category, [])
        if name in names:
            names.remove(name)

    def set_enabled(self, name: str, enabled: bool) -> bool:
        """Toggle an operation's visibility. Returns False if it is not registered."""
        entry = self._entries.get(name)
        if entry is None:
            return False
        entry.enabled = enabled
        logger.info(f"Tool '{name}' {'enabled' if enabled else 'disabled'}")
        return True

    def cleanup(self) -> None:
        """Clear all registry state."""
        self._entries.clear()
        self._validators.clear()
        for names in self._categories.values():
            names.clear()
        logger.info("Tool registry cleaned up")

    # =========================================================================
    # Lookup
    # =========================================================================

    def list_all(self) -> List[OperationDescriptor]:
        return [entry.descriptor for entry in self._entries.values() if entry.enabled]

    def list_all_for_documentation(self) -> List[OperationDescriptor]:
        """All registered operations, including disabled ones."""
        return [entry.descriptor for entry in self._entries.values()]

    def list_by_category(self, category: ToolCategory) -> List[OperationDescriptor]:
        return [
            self._entries[name].descriptor
            for name in self._categories.get(category, [])
            if self._entries[name].enabled
        ]

    def get(self, name: str) -> Optional[OperationDescriptor]:
        """Enabled descriptor by name, or None."""
        entry = self._entries.get(name)
        return entry.descriptor if entry is not None and entry.enabled else None

    def get_entry(self, name: str) -> Optional[RegistryEntry]:
        """Registry entry with runtime statistics, enabled or not."""
        return self._entries.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def list_available(self) -> List[OperationDescriptor]:
        """
        Enabled operations that the connected controller can serve.

        Falls back to every enabled operation when capability detection fails.
        """
        enabled = self.list_all()
        try:
            availability = await self.detector.get_tool_availability(enabled)
        except UniFiMCPError as e:
            logger.error(f"Failed to get available tools, returning all enabled: {e.detail}")
            return enabled

        available = []
        for descriptor in enabled:
            status = availability.get(descriptor.name)
            if status is not None and status.available:
                available.append(descriptor)
            else:
                logger.debug(
                    f"Tool '{descriptor.name}' not available: "
                    f"{status.reason if status else 'unknown'}"
                )
        return available

    async def list_for_external_catalog(self) -> List[Dict[str, Any]]:
        """
        Catalog for protocol clients as ``[{name, description, inputSchema}]``.

        Without a connection the full enabled catalog is returned so
        discovery can show potential capabilities; once connected only
        currently available operations are listed.
        """
        if not self.client.is_connected:
            logger.debug("UniFi not connected, returning full enabled catalog")
            descriptors = self.list_all()
        else:
            descriptors = await self.list_available()

        return [
            {
                "name": descriptor.name,
                "description": descriptor.description,
                "inputSchema": descriptor.input_schema,
            }
            for descriptor in descriptors
        ]

    async def filter_by_features(self) -> Dict[str, List[str]]:
        """
        Partition enabled operations into available, unavailable and deprecated.

        Raises:
            CapabilityDetectionFailure: If capabilities cannot be detected
        """
        enabled = self.list_all()
        availability = await self.detector.get_tool_availability(enabled)
        groups: Dict[str, List[str]] = {"available": [], "unavailable": [], "deprecated": []}

        for descriptor in enabled:
            status = availability.get(descriptor.name)
            if status is None or not status.available:
                groups["unavailable"].append(descriptor.name)
            elif status.deprecated:
                groups["deprecated"].append(descriptor.name)
            else:
                groups["available"].append(descriptor.name)
        return groups

    # =========================================================================
    # Invocation
    # =========================================================================

    async def invoke(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> InvocationResult:
        """
        Run an operation through the precondition pipeline.

        Order of checks: not found, disabled, connection, required feature,
        dependency list, then argument validation and the handler itself.
        Precondition failures (including a failed category-feature
        dependency) are terminal and leave usage and error counts
        untouched; only argument validation and handler outcomes are
        recorded.

        Args:
            name: Operation name
            arguments: Handler arguments (validated against the input schema)

        Returns:
            InvocationResult, success or failure
        """
        arguments = dict(arguments or {})
        started = time.perf_counter()

        entry = self._entries.get(name)
        if entry is None:
            return self._failure(OperationNotFound(f"Tool '{name}' not found"), started)

        if not entry.enabled:
            return self._failure(OperationDisabled(f"Tool '{name}' is disabled"), started)

        descriptor = entry.descriptor
        if descriptor.requires_connection and not self.client.is_connected:
            return self._failure(
                ConnectionRequired(f"Tool '{name}' requires an active UniFi connection"),
                started,
            )

        if descriptor.requires_feature:
            error = await self._check_feature(name, descriptor.requires_feature)
            if error is not None:
                return self._failure(error, started)

        error = await self._validate_dependencies(entry)
        if error is not None:
            return self._failure(error, started)

        warnings = self._deprecation_warnings(entry)
        return await self._execute(entry, arguments, warnings, started)

    async def _check_feature(self, name: str, feature: str) -> Optional[UniFiMCPError]:
        try:
            await self.detector.validate_feature(feature)
        except UniFiMCPError as e:
            return FeatureUnavailable(
                f"Tool '{name}' requires features not available on this controller",
                details={
                    **e.details,
                    "feature": feature,
                    "original_error": e.detail,
                    "original_kind": e.kind.value,
                },
            )
        return None

    async def _validate_dependencies(self, entry: RegistryEntry) -> Optional[UniFiMCPError]:
        # FEATURE dependencies were already checked by invoke()
        for dependency in entry.dependencies:
            if dependency.kind == DependencyKind.CONNECTION:
                if not self.client.is_connected:
                    return ConnectionRequired(
                        f"Tool '{entry.name}' requires an active UniFi connection",
                        details={"dependency": dependency.kind.value},
                    )
            elif dependency.kind == DependencyKind.CATEGORY_FEATURE and dependency.feature:
                error = await self._check_feature(entry.name, dependency.feature)
                if error is not None:
                    error.details["dependency"] = dependency.kind.value
                    return error
        return None

    def _deprecation_warnings(self, entry: RegistryEntry) -> List[str]:
        snapshot = self.detector.get_cached()
        if snapshot is None:
            return []
        warnings = []
        for dependency in entry.dependencies:
            if dependency.feature and is_feature_deprecated(dependency.feature, snapshot):
                title = FEATURES[dependency.feature].title
                warnings.append(
                    f"{title} is deprecated in version {snapshot.version}; "
                    f"consider Zone-Based Firewall tools"
                )
                break
        return warnings

    def _validate_arguments(self, name: str, arguments: Dict[str, Any]) -> None:
        validator = self._validators.get(name)
        if validator is None:
            return
        errors = sorted(validator.iter_errors(arguments), key=lambda e: list(e.absolute_path))
        if not errors:
            return
        first = errors[0]
        field = ".".join(str(part) for part in first.absolute_path) or None
        raise ValidationError(
            f"Invalid arguments for '{name}': {first.message}",
            field=field,
            constraints=[error.message for error in errors],
        )

    async def _execute(
        self,
        entry: RegistryEntry,
        arguments: Dict[str, Any],
        warnings: List[str],
        started: float,
    ) -> InvocationResult:
        name = entry.name
        context = ToolContext(client=self.client, detector=self.detector)

        try:
            self._validate_arguments(name, arguments)
            output = await entry.descriptor.handler(context, arguments)
        except Exception as e:
            error = e if isinstance(e, UniFiMCPError) else ExecutionError(
                str(e) or type(e).__name__,
                details={"error_type": type(e).__name__},
            )
            latency_ms = self._elapsed_ms(started)
            entry.record_usage(latency_ms, success=False, now=utcnow())
            logger.warning(f"Tool '{name}' failed after {latency_ms:.1f}ms: [{error.kind.value}] {error.detail}")
            return self._failure(error, started, warnings=warnings, latency_ms=latency_ms)

        if isinstance(output, ToolOutput):
            data = output.data
            warnings = warnings + list(output.warnings)
        else:
            data = output

        latency_ms = self._elapsed_ms(started)
        entry.record_usage(latency_ms, success=True, now=utcnow())
        logger.debug(f"Tool '{name}' succeeded in {latency_ms:.1f}ms")

        return InvocationResult(
            success=True,
            data=data,
            warnings=warnings,
            execution_time_ms=latency_ms,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    def _failure(
        self,
        error: UniFiMCPError,
        started: float,
        warnings: Optional[List[str]] = None,
        latency_ms: Optional[float] = None,
    ) -> InvocationResult:
        return InvocationResult(
            success=False,
            error_kind=error.kind,
            error_message=error.detail,
            error_details=error.details or None,
            warnings=list(warnings or []),
            execution_time_ms=latency_ms if latency_ms is not None else self._elapsed_ms(started),
        )

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> RegistryStats:
        """Aggregate counters with usage-weighted average latency."""
        entries = list(self._entries.values())
        enabled = sum(1 for entry in entries if entry.enabled)
        total_usage = sum(entry.usage_count for entry in entries)
        weighted = sum(entry.average_latency_ms * entry.usage_count for entry in entries)

        return RegistryStats(
            total_operations=len(entries),
            enabled_operations=enabled,
            disabled_operations=len(entries) - enabled,
            category_counts={category.value: len(names) for category, names in self._categories.items()},
            total_invocations=total_usage,
            average_latency_ms=weighted / total_usage if total_usage else 0.0,
        )
