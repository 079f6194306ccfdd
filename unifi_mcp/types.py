"""
Type definitions for unifi-mcp.

Defines enums and dataclasses used across the package for:
- Connection state and health of the controller session
- Capability snapshots derived from the controller's system info
- Tool registration records and invocation results
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from unifi_mcp._core.client import UniFiClient
    from unifi_mcp.capabilities import CapabilityDetector


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Error Kinds
# =============================================================================


class ErrorKind(str, Enum):
    """
    Machine-readable failure kinds.

    Every UniFiMCPError carries exactly one kind, and every failed
    InvocationResult reports it as its error code.
    """
    # Transport / session
    CONNECTION_FAILURE = "CONNECTION_FAILURE"
    AUTHENTICATION_FAILURE = "AUTHENTICATION_FAILURE"
    TLS_FAILURE = "TLS_FAILURE"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    REMOTE_SERVER_ERROR = "REMOTE_SERVER_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    # Capabilities
    FEATURE_NOT_SUPPORTED = "FEATURE_NOT_SUPPORTED"
    HARDWARE_INCOMPATIBLE = "HARDWARE_INCOMPATIBLE"
    CAPABILITY_DETECTION_FAILURE = "CAPABILITY_DETECTION_FAILURE"

    # Dispatch
    VALIDATION_ERROR = "VALIDATION_ERROR"
    OPERATION_NOT_FOUND = "OPERATION_NOT_FOUND"
    OPERATION_DISABLED = "OPERATION_DISABLED"
    CONNECTION_REQUIRED = "CONNECTION_REQUIRED"
    FEATURE_UNAVAILABLE = "FEATURE_UNAVAILABLE"
    EXECUTION_ERROR = "EXECUTION_ERROR"

    # Other
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


# =============================================================================
# Connection Types
# =============================================================================


class HealthStatus(str, Enum):
    """Result of a controller health check."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class RemoteInfo:
    """Identity of the controller the client is connected to."""
    address: str
    version: str
    model: str
    site_id: str


@dataclass
class ConnectionState:
    """
    State of the single logical controller connection.

    Owned by UniFiClient. Reset on disconnect and reconfiguration,
    except for attempt_count which accumulates for the client's lifetime.
    """
    connected: bool = False
    authenticated: bool = False
    last_connected_at: Optional[datetime] = None
    last_error: Optional[str] = None
    attempt_count: int = 0
    remote_info: Optional[RemoteInfo] = None

    @property
    def is_active(self) -> bool:
        return self.connected and self.authenticated


@dataclass(frozen=True)
class SystemInfo:
    """System information reported by the controller."""
    version: str
    hardware_model: str
    hostname: str = ""
    build: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass
class HealthReport:
    """Outcome of UniFiClient.health_check()."""
    status: HealthStatus
    connected: bool
    authenticated: bool
    latency_ms: Optional[float] = None
    version: Optional[str] = None
    last_connected_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        if self.last_connected_at is not None:
            data["last_connected_at"] = self.last_connected_at.isoformat()
        return data


# =============================================================================
# Capability Types
# =============================================================================


@dataclass(frozen=True)
class HardwareProfile:
    """Hardware model and its tiered limits."""
    model: str
    supports_advanced_firewall: bool = False
    max_firewall_rules: int = 100
    max_zones: int = 10


@dataclass(frozen=True)
class CapabilitySnapshot:
    """
    Immutable description of what the connected controller supports.

    Replaced wholesale on re-detection, never updated in place.
    """
    version: str
    feature_flags: Dict[str, bool]
    supported_paths: Tuple[str, ...]
    deprecated_paths: Tuple[str, ...]
    hardware: HardwareProfile
    detected_at: datetime = field(default_factory=utcnow)

    def supports(self, feature: str) -> bool:
        """Check whether a feature flag is set."""
        return self.feature_flags.get(feature, False)

    def is_deprecated(self, path: str) -> bool:
        return path in self.deprecated_paths

    def is_stale(self, now: datetime, validity_seconds: float) -> bool:
        """Check whether the snapshot is older than its validity window."""
        return (now - self.detected_at).total_seconds() >= validity_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "feature_flags": dict(self.feature_flags),
            "supported_paths": list(self.supported_paths),
            "deprecated_paths": list(self.deprecated_paths),
            "hardware": asdict(self.hardware),
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass(frozen=True)
class OperationAvailability:
    """Derived availability of one registered operation."""
    available: bool
    reason: Optional[str] = None
    alternative: Optional[str] = None
    minimum_version: Optional[str] = None
    deprecated: bool = False


# =============================================================================
# Tool Registry Types
# =============================================================================


class ToolCategory(str, Enum):
    """Categories used to group registered operations."""
    CONNECTION = "connection"
    DEVICES = "devices"
    CLIENTS = "clients"
    FIREWALL_LEGACY = "firewall-legacy"
    FIREWALL_ZBF = "firewall-zbf"
    NETWORKS = "networks"
    MONITORING = "monitoring"
    AUTOMATION = "automation"


class DependencyKind(str, Enum):
    """Kinds of precondition checked before a handler runs."""
    CONNECTION = "connection"
    FEATURE = "feature"
    CATEGORY_FEATURE = "category_feature"


@dataclass(frozen=True)
class Dependency:
    """One precondition of an operation, computed at registration time."""
    kind: DependencyKind
    feature: Optional[str] = None


@dataclass
class ToolContext:
    """Collaborators injected into every handler call."""
    client: "UniFiClient"
    detector: "CapabilityDetector"


@dataclass
class ToolOutput:
    """
    Handler return value carrying warnings alongside the data.

    Handlers may also return plain data, which is treated as
    ToolOutput(data=...) with no warnings.
    """
    data: Any = None
    warnings: List[str] = field(default_factory=list)


ToolHandler = Callable[[ToolContext, Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class OperationDescriptor:
    """
    Static registration record for one invocable operation.

    Attributes:
        name: Globally unique operation name
        description: Human-readable description for the catalog
        category: Grouping category
        handler: Async callable receiving (ToolContext, arguments)
        input_schema: JSON schema for the arguments
        requires_connection: Whether an active controller session is needed
        requires_feature: Feature key that must be supported, if any
    """
    name: str
    description: str
    category: ToolCategory
    handler: ToolHandler = field(compare=False)
    input_schema: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}},
        compare=False,
    )
    requires_connection: bool = True
    requires_feature: Optional[str] = None


@dataclass
class RegistryEntry:
    """Registered descriptor plus its mutable runtime statistics."""
    descriptor: OperationDescriptor
    dependencies: Tuple[Dependency, ...] = ()
    enabled: bool = True
    registered_at: datetime = field(default_factory=utcnow)
    usage_count: int = 0
    error_count: int = 0
    average_latency_ms: float = 0.0
    last_used_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    def record_usage(self, latency_ms: float, success: bool, now: datetime) -> None:
        """Fold one invocation into the running statistics."""
        self.usage_count += 1
        n = self.usage_count
        self.average_latency_ms = ((self.average_latency_ms * (n - 1)) + latency_ms) / n
        self.last_used_at = now
        if not success:
            self.error_count += 1


@dataclass
class InvocationResult:
    """
    Outcome of one invocation through the registry.

    Created per call; failure is reported here, never raised.
    """
    success: bool
    data: Any = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Render in the shape consumed by protocol-facing callers."""
        result: Dict[str, Any] = {"success": self.success}
        if self.success:
            result["data"] = self.data
        else:
            result["error"] = {
                "code": self.error_kind.value if self.error_kind else ErrorKind.EXECUTION_ERROR.value,
                "message": self.error_message or "",
                "details": self.error_details,
            }
        if self.warnings:
            result["warnings"] = list(self.warnings)
        result["metadata"] = {
            "execution_time_ms": round(self.execution_time_ms, 3),
            "timestamp": self.timestamp.isoformat(),
        }
        return result


@dataclass(frozen=True)
class RegistryStats:
    """Aggregate counters across the registry."""
    total_operations: int
    enabled_operations: int
    disabled_operations: int
    category_counts: Dict[str, int]
    total_invocations: int
    average_latency_ms: float
