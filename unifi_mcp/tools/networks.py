"""
Network configuration tools.
"""

from __future__ import annotations

from typing import Any, Dict

from unifi_mcp.tools import endpoints
from unifi_mcp.tools.common import count_by, records
from unifi_mcp.types import OperationDescriptor, ToolCategory, ToolContext


async def get_networks(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    networks = records(await ctx.client.get(endpoints.NETWORKS))
    purpose = arguments.get("purpose")
    if purpose:
        networks = [n for n in networks if n.get("purpose") == purpose]
    return {
        "networks": networks,
        "summary": {
            "total": len(networks),
            "by_purpose": count_by(networks, lambda n: n.get("purpose", "unknown")),
        },
    }


NETWORK_TOOLS = [
    OperationDescriptor(
        name="unifi_get_networks",
        description="Get configured networks and VLANs",
        category=ToolCategory.NETWORKS,
        handler=get_networks,
        input_schema={
            "type": "object",
            "properties": {
                "purpose": {
                    "type": "string",
                    "enum": ["corporate", "guest", "wan", "vlan-only", "remote-user-vpn", "site-vpn"],
                    "description": "Filter by network purpose",
                },
            },
            "additionalProperties": False,
        },
    ),
]
