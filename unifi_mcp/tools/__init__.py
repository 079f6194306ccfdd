"""
Domain tool handlers for the UniFi controller.

Each module exposes a list of OperationDescriptors; register_default_tools()
registers them on a ToolRegistry according to the server's feature toggles.
Automation tools are bound to a BlockScheduler, which owns their jobs.
"""

from __future__ import annotations

from typing import List, Optional, Tuple, TYPE_CHECKING

from unifi_mcp.config import ServerConfig
from unifi_mcp.tools.automation import BlockScheduler
from unifi_mcp.tools.clients import CLIENT_TOOLS
from unifi_mcp.tools.connection import CONNECTION_TOOLS
from unifi_mcp.tools.devices import DEVICE_TOOLS
from unifi_mcp.tools.firewall_legacy import LEGACY_FIREWALL_TOOLS
from unifi_mcp.tools.firewall_zbf import ZBF_TOOLS
from unifi_mcp.tools.monitoring import MONITORING_TOOLS
from unifi_mcp.tools.networks import NETWORK_TOOLS
from unifi_mcp.types import OperationDescriptor

if TYPE_CHECKING:
    from unifi_mcp.registry import ToolRegistry


def default_tools(
    server_config: Optional[ServerConfig] = None,
    scheduler: Optional[BlockScheduler] = None,
) -> List[OperationDescriptor]:
    """Descriptors enabled by the server's feature toggles."""
    server_config = server_config or ServerConfig()
    tools = [*CONNECTION_TOOLS, *DEVICE_TOOLS, *CLIENT_TOOLS, *NETWORK_TOOLS]
    if server_config.enable_legacy_firewall:
        tools.extend(LEGACY_FIREWALL_TOOLS)
    if server_config.enable_zbf_tools:
        tools.extend(ZBF_TOOLS)
    if server_config.enable_monitoring:
        tools.extend(MONITORING_TOOLS)
    if server_config.enable_automation:
        tools.extend((scheduler or BlockScheduler()).tools())
    return tools


def register_default_tools(
    registry: "ToolRegistry",
    server_config: Optional[ServerConfig] = None,
    scheduler: Optional[BlockScheduler] = None,
) -> Tuple[int, int]:
    """
    Register the built-in tools.

    Returns:
        (successful, failed) registration counts
    """
    return registry.register_batch(default_tools(server_config, scheduler))


__all__ = [
    "default_tools",
    "register_default_tools",
    "BlockScheduler",
    "CONNECTION_TOOLS",
    "DEVICE_TOOLS",
    "CLIENT_TOOLS",
    "LEGACY_FIREWALL_TOOLS",
    "ZBF_TOOLS",
    "NETWORK_TOOLS",
    "MONITORING_TOOLS",
]
