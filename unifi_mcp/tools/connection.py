"""
Connection management tools.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from unifi_mcp.types import OperationDescriptor, ToolCategory, ToolContext, ToolOutput

logger = logging.getLogger(__name__)


def _state_dict(ctx: ToolContext) -> Dict[str, Any]:
    state = ctx.client.connection_state
    remote = state.remote_info
    return {
        "connected": state.connected,
        "authenticated": state.authenticated,
        "last_connected_at": state.last_connected_at.isoformat() if state.last_connected_at else None,
        "attempt_count": state.attempt_count,
        "gateway": remote.address if remote else ctx.client.config.gateway,
        "site_id": remote.site_id if remote else ctx.client.config.site_id,
        "version": remote.version if remote else None,
        "model": remote.model if remote else None,
    }


async def connect(ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
    """Apply optional connection overrides, then connect."""
    config = ctx.client.config.with_overrides(
        gateway=arguments.get("gateway"),
        api_key=arguments.get("api_key"),
        site_id=arguments.get("site_id"),
        verify_ssl=arguments.get("verify_ssl"),
        timeout=arguments.get("timeout"),
    )
    logger.info(f"Connecting to UniFi controller at {config.gateway}")

    await ctx.client.connect(config)
    ctx.detector.clear_cache()

    warnings: List[str] = []
    if not config.verify_ssl:
        warnings.append("SSL certificate verification is disabled")
    return ToolOutput(data=_state_dict(ctx), warnings=warnings)


async def test_connection(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    report = await ctx.client.health_check()
    return {
        "health": report.to_dict(),
        "statistics": ctx.client.statistics(),
    }


async def get_system_info(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    info = await ctx.client.get_system_info()
    return {
        "version": info.version,
        "hardware_model": info.hardware_model,
        "hostname": info.hostname,
        "build": info.build,
    }


async def disconnect(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    await ctx.client.disconnect()
    ctx.detector.clear_cache()
    return {"disconnected": True}


async def get_connection_status(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Local view of the session; makes no controller request."""
    return {
        "connection": {**_state_dict(ctx), "last_error": ctx.client.connection_state.last_error},
        "statistics": ctx.client.statistics(),
        "configuration": ctx.client.redacted_config(),
    }


async def get_capabilities(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    if arguments.get("refresh"):
        snapshot = await ctx.detector.force_detection()
    else:
        snapshot = await ctx.detector.detect_capabilities()
    return snapshot.to_dict()


CONNECTION_TOOLS = [
    OperationDescriptor(
        name="unifi_connect",
        description="Connect to a UniFi controller, optionally overriding the configured connection settings",
        category=ToolCategory.CONNECTION,
        handler=connect,
        requires_connection=False,
        input_schema={
            "type": "object",
            "properties": {
                "gateway": {"type": "string", "minLength": 1, "description": "Controller IP address or hostname"},
                "api_key": {"type": "string", "minLength": 1, "description": "UniFi API key"},
                "site_id": {"type": "string", "minLength": 1, "description": "Site identifier"},
                "verify_ssl": {"type": "boolean", "description": "Verify the controller certificate"},
                "timeout": {"type": "number", "minimum": 1, "maximum": 300, "description": "Request timeout in seconds"},
            },
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_test_connection",
        description="Check controller health and report connection statistics",
        category=ToolCategory.CONNECTION,
        handler=test_connection,
        requires_connection=False,
    ),
    OperationDescriptor(
        name="unifi_get_system_info",
        description="Get controller version and hardware information",
        category=ToolCategory.CONNECTION,
        handler=get_system_info,
    ),
    OperationDescriptor(
        name="unifi_disconnect",
        description="Disconnect from the UniFi controller",
        category=ToolCategory.CONNECTION,
        handler=disconnect,
        requires_connection=False,
    ),
    OperationDescriptor(
        name="unifi_get_capabilities",
        description="Get detected controller capabilities (features, endpoints, hardware limits)",
        category=ToolCategory.CONNECTION,
        handler=get_capabilities,
        input_schema={
            "type": "object",
            "properties": {
                "refresh": {"type": "boolean", "description": "Bypass the capability cache", "default": False},
            },
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_get_connection_status",
        description="Get connection state, client statistics and the active configuration (API key omitted)",
        category=ToolCategory.CONNECTION,
        handler=get_connection_status,
        requires_connection=False,
    ),
]
