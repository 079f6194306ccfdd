"""
MCP SDK Integrations for unifi-mcp.
"""

from unifi_mcp.integrations.mcp import (
    UniFiMCPServer,
    build_server,
    MCP_AVAILABLE,
)

__all__ = [
    "UniFiMCPServer",
    "build_server",
    "MCP_AVAILABLE",
]
