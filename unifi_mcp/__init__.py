"""
unifi-mcp: MCP broker for UniFi Network controllers.

This package provides:
- A resilient controller client (API-key auth, rate limiting, retry with
  backoff, response envelope normalization)
- Capability detection gating features by controller version and hardware
- A tool registry whose invoke() always returns a structured result
- An MCP server exposing the registry over stdio

Installation:
    pip install unifi-mcp          # Client, detector and registry
    pip install unifi-mcp[mcp]     # With MCP SDK integration

Quickstart (Client):
    from unifi_mcp import ClientConfig, UniFiClient

    config = ClientConfig(gateway="192.168.1.1", api_key="...")
    async with UniFiClient(config) as client:
        devices = await client.get("/proxy/network/api/s/{site}/stat/device")

Quickstart (Registry):
    from unifi_mcp import CapabilityDetector, ToolRegistry, register_default_tools

    detector = CapabilityDetector(client)
    registry = ToolRegistry(client, detector)
    register_default_tools(registry)

    result = await registry.invoke("unifi_get_devices", {"status": "online"})
    print(result.to_dict())

Quickstart (Server):
    python -m unifi_mcp
"""

from unifi_mcp.types import (
    ErrorKind,
    HealthStatus,
    ConnectionState,
    SystemInfo,
    HealthReport,
    HardwareProfile,
    CapabilitySnapshot,
    OperationAvailability,
    ToolCategory,
    DependencyKind,
    Dependency,
    ToolContext,
    ToolOutput,
    OperationDescriptor,
    RegistryEntry,
    InvocationResult,
    RegistryStats,
)
from unifi_mcp.errors import (
    UniFiMCPError,
    ConnectionFailure,
    RequestTimeout,
    AuthenticationFailure,
    TlsFailure,
    RateLimited,
    RemoteServerError,
    ResourceNotFound,
    FeatureNotSupported,
    HardwareIncompatible,
    CapabilityDetectionFailure,
    ValidationError,
    OperationNotFound,
    OperationDisabled,
    ConnectionRequired,
    FeatureUnavailable,
    ExecutionError,
    ConfigurationError,
)
from unifi_mcp.config import (
    ClientConfig,
    ServerConfig,
    RetryConfig,
    RateLimitConfig,
)
from unifi_mcp._core.version import MCP_VERSION, is_at_least, normalize_version
from unifi_mcp._core.client import UniFiClient
from unifi_mcp._core.health import HealthMonitor
from unifi_mcp.capabilities import CapabilityDetector, FEATURES
from unifi_mcp.registry import ToolRegistry
from unifi_mcp.tools import register_default_tools

__version__ = MCP_VERSION

__all__ = [
    # Version
    "__version__",
    "MCP_VERSION",
    "is_at_least",
    "normalize_version",
    # Types
    "ErrorKind",
    "HealthStatus",
    "ConnectionState",
    "SystemInfo",
    "HealthReport",
    "HardwareProfile",
    "CapabilitySnapshot",
    "OperationAvailability",
    "ToolCategory",
    "DependencyKind",
    "Dependency",
    "ToolContext",
    "ToolOutput",
    "OperationDescriptor",
    "RegistryEntry",
    "InvocationResult",
    "RegistryStats",
    # Errors
    "UniFiMCPError",
    "ConnectionFailure",
    "RequestTimeout",
    "AuthenticationFailure",
    "TlsFailure",
    "RateLimited",
    "RemoteServerError",
    "ResourceNotFound",
    "FeatureNotSupported",
    "HardwareIncompatible",
    "CapabilityDetectionFailure",
    "ValidationError",
    "OperationNotFound",
    "OperationDisabled",
    "ConnectionRequired",
    "FeatureUnavailable",
    "ExecutionError",
    "ConfigurationError",
    # Config
    "ClientConfig",
    "ServerConfig",
    "RetryConfig",
    "RateLimitConfig",
    # Client / capabilities / registry
    "UniFiClient",
    "HealthMonitor",
    "CapabilityDetector",
    "FEATURES",
    "ToolRegistry",
    "register_default_tools",
]
