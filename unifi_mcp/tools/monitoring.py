"""
Monitoring tools (site health and events).
"""

from __future__ import annotations

from typing import Any, Dict

from unifi_mcp.tools import endpoints
from unifi_mcp.tools.common import records
from unifi_mcp.types import OperationDescriptor, ToolCategory, ToolContext


async def get_site_stats(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    subsystems = records(await ctx.client.get(endpoints.HEALTH))
    return {
        "subsystems": {s.get("subsystem", "unknown"): s for s in subsystems},
        "degraded": [s.get("subsystem") for s in subsystems if s.get("status") not in (None, "ok")],
    }


async def get_events(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    query = {
        "_limit": arguments.get("limit", 100),
        "within": arguments.get("within_hours", 24),
    }
    events = records(await ctx.client.get(endpoints.EVENTS, query))
    return {"events": events, "total": len(events)}


MONITORING_TOOLS = [
    OperationDescriptor(
        name="unifi_get_site_stats",
        description="Get per-subsystem health of the site (WAN, LAN, WLAN, VPN)",
        category=ToolCategory.MONITORING,
        handler=get_site_stats,
        requires_feature="advanced_stats",
    ),
    OperationDescriptor(
        name="unifi_get_events",
        description="Get recent controller events",
        category=ToolCategory.MONITORING,
        handler=get_events,
        requires_feature="advanced_stats",
        input_schema={
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "minimum": 1, "maximum": 3000, "default": 100},
                "within_hours": {"type": "integer", "minimum": 1, "maximum": 720, "default": 24},
            },
            "additionalProperties": False,
        },
    ),
]
