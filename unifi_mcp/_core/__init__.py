"""
Internal connection layer for the UniFi controller.

This module is internal and should not be imported directly by users.
Use the public API from unifi_mcp instead.
"""

from unifi_mcp._core.version import MCP_VERSION, is_at_least, normalize_version, parse_version
from unifi_mcp._core.transport import Transport, TransportResponse
from unifi_mcp._core.ratelimit import TokenBucket
from unifi_mcp._core.retry import compute_backoff, retry_call
from unifi_mcp._core.client import UniFiClient, normalize_envelope, parse_system_info
from unifi_mcp._core.health import HealthMonitor, wait_healthy

__all__ = [
    "MCP_VERSION",
    "is_at_least",
    "normalize_version",
    "parse_version",
    "Transport",
    "TransportResponse",
    "TokenBucket",
    "compute_backoff",
    "retry_call",
    "UniFiClient",
    "normalize_envelope",
    "parse_system_info",
    "HealthMonitor",
    "wait_healthy",
]
