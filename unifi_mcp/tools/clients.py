"""
Client (station) management tools.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from unifi_mcp.errors import UniFiMCPError
from unifi_mcp.tools import endpoints
from unifi_mcp.tools.common import (
    MAC_PATTERN,
    SORT_ORDER_SCHEMA,
    ensure_ok,
    first_record,
    normalize_mac,
    optional_record,
    records,
    sort_records,
)
from unifi_mcp.types import OperationDescriptor, ToolCategory, ToolContext, ToolOutput

logger = logging.getLogger(__name__)


def connection_type(station: Dict[str, Any]) -> str:
    if station.get("type"):
        return str(station["type"])
    if station.get("is_vpn"):
        return "vpn"
    return "wired" if station.get("is_wired") else "wireless"


async def get_clients(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if arguments.get("network_id"):
        query["network_id"] = arguments["network_id"]

    stations = records(await ctx.client.get(endpoints.CLIENTS, query or None))

    client_type = arguments.get("client_type")
    if client_type:
        stations = [s for s in stations if connection_type(s) == client_type]
    if "blocked" in arguments:
        stations = [s for s in stations if bool(s.get("blocked")) == arguments["blocked"]]

    stations = sort_records(stations, arguments.get("sort_by"), arguments.get("sort_order", "desc"))
    total = len(stations)
    stations = stations[: arguments.get("limit", 100)]

    return {
        "clients": stations,
        "summary": {
            "total": total,
            "returned": len(stations),
            "wired": sum(1 for s in stations if connection_type(s) == "wired"),
            "wireless": sum(1 for s in stations if connection_type(s) == "wireless"),
            "blocked": sum(1 for s in stations if s.get("blocked")),
        },
    }


async def block_client(ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
    mac = normalize_mac(arguments["mac"])
    logger.info(f"Blocking client {mac}")
    response = await ctx.client.post(endpoints.CLIENT_BLOCK, {"cmd": "block-sta", "mac": mac})
    ensure_ok(response, "Client block")
    return ToolOutput(
        data={"mac": mac, "blocked": True},
        warnings=["Client will be disconnected and prevented from reconnecting"],
    )


async def unblock_client(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    mac = normalize_mac(arguments["mac"])
    logger.info(f"Unblocking client {mac}")
    response = await ctx.client.post(endpoints.CLIENT_UNBLOCK, {"cmd": "unblock-sta", "mac": mac})
    ensure_ok(response, "Client unblock")
    return {"mac": mac, "blocked": False}


def signal_quality(signal: float) -> str:
    if signal > -50:
        return "excellent"
    if signal > -60:
        return "good"
    if signal > -70:
        return "fair"
    return "poor"


async def get_client_details(ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
    """Client record, optionally with statistics and recent connection events."""
    client_id = arguments["client_id"]
    envelope = await ctx.client.get(endpoints.with_id(endpoints.CLIENT_DETAILS, client_id))
    station = first_record(envelope, "Client", client_id)

    data: Dict[str, Any] = {"client": station}
    warnings: List[str] = []

    if arguments.get("include_stats", True):
        data["statistics"], warning = await optional_record(
            ctx, endpoints.with_id(endpoints.CLIENT_STATS, client_id), "client statistics"
        )
        if warning:
            warnings.append(warning)

    if arguments.get("include_history"):
        try:
            history = await ctx.client.get(endpoints.EVENTS, {"mac": station.get("mac", client_id), "_limit": 50})
            data["connection_history"] = records(history)
        except UniFiMCPError as e:
            logger.warning(f"Could not fetch connection history of {client_id}: {e.detail}")
            data["connection_history"] = []
            warnings.append(f"Could not fetch connection history: {e.detail}")

    if connection_type(station) == "wireless" and station.get("signal") is not None:
        data["quality_metrics"] = {
            "signal_strength": station["signal"],
            "signal_quality": signal_quality(station["signal"]),
            "ccq": station.get("ccq", 0),
            "satisfaction": station.get("satisfaction", 0),
        }

    return ToolOutput(data=data, warnings=warnings)


async def reconnect_client(ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
    """Kick a connected client so it re-associates."""
    client_id = arguments["client_id"]
    envelope = await ctx.client.get(endpoints.with_id(endpoints.CLIENT_DETAILS, client_id))
    station = first_record(envelope, "Client", client_id)
    name = station.get("name") or station.get("hostname") or client_id

    if station.get("connected") is False:
        return ToolOutput(data={
            "client_id": client_id,
            "client_name": name,
            "kicked": False,
            "message": "Client is already disconnected",
        })

    mac = normalize_mac(station.get("mac", client_id))
    logger.info(f"Forcing reconnection of client {mac}")
    response = await ctx.client.post(endpoints.CLIENT_KICK, {"cmd": "kick-sta", "mac": mac})
    ensure_ok(response, "Client kick")

    return ToolOutput(
        data={
            "client_id": client_id,
            "client_name": name,
            "mac": mac,
            "kicked": True,
            "message": f"Client {name} has been kicked and will reconnect automatically",
        },
        warnings=[
            "Client will be temporarily disconnected",
            "Automatic reconnection should occur within seconds",
        ],
    )


_CLIENT_ID = {"type": "string", "minLength": 1, "description": "Client ID or MAC address"}

_MAC_ARGUMENT = {
    "type": "object",
    "properties": {
        "mac": {"type": "string", "pattern": MAC_PATTERN, "description": "Client MAC address"},
    },
    "required": ["mac"],
    "additionalProperties": False,
}

CLIENT_TOOLS = [
    OperationDescriptor(
        name="unifi_get_clients",
        description="Get list of clients with optional filtering",
        category=ToolCategory.CLIENTS,
        handler=get_clients,
        input_schema={
            "type": "object",
            "properties": {
                "network_id": {"type": "string", "description": "Filter by network ID"},
                "client_type": {
                    "type": "string",
                    "enum": ["wired", "wireless", "vpn"],
                    "description": "Filter by connection type",
                },
                "blocked": {"type": "boolean", "description": "Filter by blocked status"},
                "sort_by": {
                    "type": "string",
                    "enum": ["name", "hostname", "ip", "mac", "last_seen", "rx_bytes", "tx_bytes"],
                    "description": "Sort clients by field",
                },
                "sort_order": {**SORT_ORDER_SCHEMA, "default": "desc"},
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 1000,
                    "default": 100,
                    "description": "Maximum number of clients to return",
                },
            },
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_block_client",
        description="Block a client from the network",
        category=ToolCategory.CLIENTS,
        handler=block_client,
        input_schema=_MAC_ARGUMENT,
    ),
    OperationDescriptor(
        name="unifi_unblock_client",
        description="Unblock a previously blocked client",
        category=ToolCategory.CLIENTS,
        handler=unblock_client,
        input_schema=_MAC_ARGUMENT,
    ),
    OperationDescriptor(
        name="unifi_get_client_details",
        description="Get detailed information for a specific client",
        category=ToolCategory.CLIENTS,
        handler=get_client_details,
        input_schema={
            "type": "object",
            "properties": {
                "client_id": _CLIENT_ID,
                "include_stats": {"type": "boolean", "description": "Include client statistics", "default": True},
                "include_history": {"type": "boolean", "description": "Include connection history", "default": False},
            },
            "required": ["client_id"],
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_reconnect_client",
        description="Force a client to reconnect by disconnecting it",
        category=ToolCategory.CLIENTS,
        handler=reconnect_client,
        input_schema={
            "type": "object",
            "properties": {"client_id": _CLIENT_ID},
            "required": ["client_id"],
            "additionalProperties": False,
        },
    ),
]
