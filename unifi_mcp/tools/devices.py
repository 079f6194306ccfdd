"""
Device management tools (gateways, switches, access points).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from unifi_mcp.tools import endpoints
from unifi_mcp.tools.common import (
    MAC_PATTERN,
    SORT_ORDER_SCHEMA,
    count_by,
    ensure_ok,
    first_record,
    normalize_mac,
    optional_record,
    records,
    sort_records,
)
from unifi_mcp.types import OperationDescriptor, ToolCategory, ToolContext, ToolOutput

logger = logging.getLogger(__name__)

# Numeric device states reported by the controller
DEVICE_STATES = {
    0: "offline",
    1: "online",
    2: "pending",
    4: "upgrading",
    5: "provisioning",
    6: "heartbeat_missed",
    7: "adopting",
}


def device_status(device: Dict[str, Any]) -> str:
    status = device.get("status")
    if status:
        return str(status)
    return DEVICE_STATES.get(device.get("state"), "unknown")


async def get_devices(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    device_type = arguments.get("device_type")
    status = arguments.get("status")

    devices = records(await ctx.client.get(endpoints.DEVICES))

    if device_type:
        devices = [d for d in devices if d.get("type") == device_type]
    if status:
        devices = [d for d in devices if device_status(d) == status]

    devices = sort_records(devices, arguments.get("sort_by"), arguments.get("sort_order", "asc"))

    return {
        "devices": devices,
        "summary": {
            "total": len(devices),
            "online": sum(1 for d in devices if device_status(d) == "online"),
            "offline": sum(1 for d in devices if device_status(d) == "offline"),
            "by_type": count_by(devices, lambda d: d.get("type", "unknown")),
        },
        "filters": {"device_type": device_type, "status": status},
    }


async def get_device_details(ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
    device_id = arguments["device_id"]
    envelope = await ctx.client.get(endpoints.with_id(endpoints.DEVICE_DETAILS, device_id))
    data: Dict[str, Any] = {"device": first_record(envelope, "Device", device_id)}

    warnings: List[str] = []
    if arguments.get("include_stats"):
        data["statistics"], warning = await optional_record(
            ctx, endpoints.with_id(endpoints.DEVICE_STATS, device_id), "device statistics"
        )
        if warning:
            warnings.append(warning)
    return ToolOutput(data=data, warnings=warnings)


async def restart_device(ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
    device_id = arguments["device_id"]
    reboot_type = "hard" if arguments.get("force") else "soft"

    envelope = await ctx.client.get(endpoints.with_id(endpoints.DEVICE_DETAILS, device_id))
    device = first_record(envelope, "Device", device_id)

    logger.info(f"Restarting device {device_id} ({reboot_type})")
    response = await ctx.client.post(
        endpoints.DEVICE_RESTART,
        {"cmd": "restart", "mac": device.get("mac", device_id), "reboot_type": reboot_type},
    )
    ensure_ok(response, "Device restart")

    name = device.get("name") or device_id
    return ToolOutput(
        data={
            "device_id": device_id,
            "device_name": device.get("name"),
            "device_type": device.get("type"),
            "restart_initiated": True,
            "restart_type": reboot_type,
            "message": f"Restart command sent to {name}",
        },
        warnings=[
            "Device will be temporarily unavailable during restart",
            "Connected clients may experience brief disconnection",
        ],
    )


async def adopt_device(ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
    mac = normalize_mac(arguments["mac"])
    command: Dict[str, Any] = {"cmd": "adopt", "mac": mac}
    if arguments.get("name"):
        command["name"] = arguments["name"]

    logger.info(f"Adopting device {mac}")
    ensure_ok(await ctx.client.post(endpoints.DEVICE_ADOPT, command), "Device adoption")

    return ToolOutput(
        data={
            "mac": mac,
            "device_name": arguments.get("name"),
            "adoption_initiated": True,
            "message": f"Adoption command sent for device {mac}",
        },
        warnings=[
            "Device adoption may take several minutes to complete",
            "Device will download the latest firmware if needed",
        ],
    )


async def upgrade_device(ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
    device_id = arguments["device_id"]
    firmware_url = arguments.get("firmware_url")

    envelope = await ctx.client.get(endpoints.with_id(endpoints.DEVICE_DETAILS, device_id))
    device = first_record(envelope, "Device", device_id)

    command: Dict[str, Any] = {"cmd": "upgrade", "mac": device.get("mac", device_id)}
    if firmware_url:
        command["url"] = firmware_url

    logger.info(f"Upgrading firmware of device {device_id} (custom firmware: {bool(firmware_url)})")
    ensure_ok(await ctx.client.post(endpoints.DEVICE_UPGRADE, command), "Device upgrade")

    name = device.get("name") or device_id
    return ToolOutput(
        data={
            "device_id": device_id,
            "device_name": device.get("name"),
            "device_type": device.get("type"),
            "current_version": device.get("version"),
            "upgrade_initiated": True,
            "custom_firmware": bool(firmware_url),
            "message": f"Firmware upgrade initiated for {name}",
        },
        warnings=[
            "Device will be unavailable during the firmware upgrade",
            "Do not power off the device while it upgrades",
            "Connected clients will be disconnected temporarily",
        ],
    )


DEVICE_TOOLS = [
    OperationDescriptor(
        name="unifi_get_devices",
        description="Get list of UniFi devices with optional filtering and sorting",
        category=ToolCategory.DEVICES,
        handler=get_devices,
        input_schema={
            "type": "object",
            "properties": {
                "device_type": {
                    "type": "string",
                    "enum": ["ugw", "udm", "usw", "uap", "uxg"],
                    "description": "Filter by device type",
                },
                "status": {
                    "type": "string",
                    "enum": ["online", "offline", "upgrading", "provisioning", "adopting"],
                    "description": "Filter by device status",
                },
                "sort_by": {
                    "type": "string",
                    "enum": ["name", "type", "model", "last_seen", "uptime"],
                    "description": "Sort devices by field",
                },
                "sort_order": SORT_ORDER_SCHEMA,
            },
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_get_device_details",
        description="Get detailed information for a specific device",
        category=ToolCategory.DEVICES,
        handler=get_device_details,
        input_schema={
            "type": "object",
            "properties": {
                "device_id": {"type": "string", "minLength": 1, "description": "Device ID or MAC address"},
                "include_stats": {"type": "boolean", "description": "Include device statistics", "default": False},
            },
            "required": ["device_id"],
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_restart_device",
        description="Restart a specific UniFi device",
        category=ToolCategory.DEVICES,
        handler=restart_device,
        input_schema={
            "type": "object",
            "properties": {
                "device_id": {"type": "string", "minLength": 1, "description": "Device ID or MAC address"},
                "force": {"type": "boolean", "description": "Hard reboot instead of soft restart", "default": False},
            },
            "required": ["device_id"],
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_adopt_device",
        description="Adopt a pending UniFi device",
        category=ToolCategory.DEVICES,
        handler=adopt_device,
        input_schema={
            "type": "object",
            "properties": {
                "mac": {"type": "string", "pattern": MAC_PATTERN, "description": "MAC address of the pending device"},
                "name": {"type": "string", "minLength": 1, "maxLength": 50, "description": "Name for the adopted device"},
            },
            "required": ["mac"],
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_upgrade_device",
        description="Upgrade the firmware of a UniFi device",
        category=ToolCategory.DEVICES,
        handler=upgrade_device,
        input_schema={
            "type": "object",
            "properties": {
                "device_id": {"type": "string", "minLength": 1, "description": "Device ID or MAC address"},
                "firmware_url": {
                    "type": "string",
                    "pattern": "^https?://",
                    "description": "Custom firmware URL",
                },
            },
            "required": ["device_id"],
            "additionalProperties": False,
        },
    ),
]
