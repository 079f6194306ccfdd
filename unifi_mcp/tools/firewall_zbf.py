"""
Zone-based firewall tools (UniFi Network 9.0+ on compatible gateways).
"""

from __future__ import annotations

from typing import Any, Dict

from unifi_mcp.tools import endpoints
from unifi_mcp.tools.common import records
from unifi_mcp.types import OperationDescriptor, ToolCategory, ToolContext


async def get_zones(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    zones = records(await ctx.client.get(endpoints.FIREWALL_ZONES))
    snapshot = ctx.detector.get_cached()
    result: Dict[str, Any] = {"zones": zones, "total": len(zones)}
    if snapshot is not None:
        result["max_zones"] = snapshot.hardware.max_zones
    return result


async def get_zone_policies(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    policies = records(await ctx.client.get(endpoints.FIREWALL_ZONE_POLICIES))
    zone_id = arguments.get("zone_id")
    if zone_id:
        policies = [
            p for p in policies
            if zone_id in (p.get("source_zone_id"), p.get("destination_zone_id"))
        ]
    return {"policies": policies, "total": len(policies)}


ZBF_TOOLS = [
    OperationDescriptor(
        name="unifi_get_zones",
        description="Get zone-based firewall zones",
        category=ToolCategory.FIREWALL_ZBF,
        handler=get_zones,
        requires_feature="zbf",
    ),
    OperationDescriptor(
        name="unifi_get_zone_policies",
        description="Get zone-based firewall policies, optionally for one zone",
        category=ToolCategory.FIREWALL_ZBF,
        handler=get_zone_policies,
        requires_feature="zbf",
        input_schema={
            "type": "object",
            "properties": {
                "zone_id": {"type": "string", "description": "Only policies with this source or destination zone"},
            },
            "additionalProperties": False,
        },
    ),
]
