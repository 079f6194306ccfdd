"""
Legacy firewall rule tools.

Rule-based firewall of controllers before 9.0. From 9.0 these endpoints
are deprecated in favor of the zone-based firewall but remain callable;
invocations then carry a deprecation warning.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from unifi_mcp.tools import endpoints
from unifi_mcp.tools.common import (
    SORT_ORDER_SCHEMA,
    count_by,
    ensure_ok,
    first_record,
    records,
    sort_records,
    updated_record,
)
from unifi_mcp.types import OperationDescriptor, ToolCategory, ToolContext

logger = logging.getLogger(__name__)

RULESETS = [
    "WAN_IN", "WAN_OUT", "WAN_LOCAL",
    "LAN_IN", "LAN_OUT", "LAN_LOCAL",
    "GUEST_IN", "GUEST_OUT", "GUEST_LOCAL",
]
ACTIONS = ["accept", "drop", "reject"]
PROTOCOLS = ["all", "tcp", "udp", "tcp_udp", "icmp"]
PORT_PATTERN = r"^\d+(-\d+)?(,\d+(-\d+)?)*$"

# Arguments of unifi_update_firewall_rule that are copied onto the stored rule
UPDATABLE_FIELDS = (
    "name", "enabled", "action", "protocol", "rule_index", "logging",
    "src_address", "dst_address", "src_port", "dst_port", "description",
)


async def get_firewall_rules(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    rules = records(await ctx.client.get(endpoints.FIREWALL_RULES))

    if "enabled" in arguments:
        rules = [r for r in rules if bool(r.get("enabled")) == arguments["enabled"]]
    if arguments.get("ruleset"):
        rules = [r for r in rules if r.get("ruleset") == arguments["ruleset"]]
    if arguments.get("action"):
        rules = [r for r in rules if r.get("action") == arguments["action"]]

    rules = sort_records(rules, arguments.get("sort_by", "rule_index"), arguments.get("sort_order", "asc"))

    return {
        "rules": rules,
        "summary": {
            "total": len(rules),
            "enabled": sum(1 for r in rules if r.get("enabled")),
            "disabled": sum(1 for r in rules if not r.get("enabled")),
            "by_action": count_by(rules, lambda r: r.get("action", "unknown")),
            "by_protocol": count_by(rules, lambda r: r.get("protocol", "all")),
        },
    }


async def create_firewall_rule(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    rule = {
        "name": arguments["name"],
        "action": arguments["action"],
        "ruleset": arguments["ruleset"],
        "rule_index": arguments["rule_index"],
        "protocol": arguments.get("protocol", "all"),
        "enabled": arguments.get("enabled", True),
        "logging": arguments.get("logging", False),
    }
    for key in ("src_address", "dst_address", "dst_port"):
        if arguments.get(key):
            rule[key] = arguments[key]

    logger.info(f"Creating legacy firewall rule '{rule['name']}' in {rule['ruleset']}")
    created = first_record(await ctx.client.post(endpoints.FIREWALL_RULES, rule), "Firewall rule", rule["name"])
    return {"rule": created, "rule_id": created.get("_id")}


async def delete_firewall_rule(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    rule_id = arguments["rule_id"]
    logger.info(f"Deleting legacy firewall rule {rule_id}")
    response = await ctx.client.delete(endpoints.with_id(endpoints.FIREWALL_RULE_DETAILS, rule_id))
    ensure_ok(response, "Firewall rule delete")
    return {"rule_id": rule_id, "deleted": True}


async def _load_rule(ctx: ToolContext, rule_id: str) -> Dict[str, Any]:
    envelope = await ctx.client.get(endpoints.with_id(endpoints.FIREWALL_RULE_DETAILS, rule_id))
    return first_record(envelope, "Firewall rule", rule_id)


async def update_firewall_rule(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge the given fields into an existing rule and store it.

    The stored rule is read first so fields not named in the arguments
    keep their current values.
    """
    rule_id = arguments["rule_id"]
    existing = await _load_rule(ctx, rule_id)

    changed: List[str] = [key for key in UPDATABLE_FIELDS if key in arguments]
    rule = {**existing, **{key: arguments[key] for key in changed}}

    logger.info(f"Updating legacy firewall rule {rule_id} ({', '.join(changed)})")
    response = await ctx.client.put(endpoints.with_id(endpoints.FIREWALL_RULE_DETAILS, rule_id), rule)
    return {
        "rule": updated_record(response, "Firewall rule update"),
        "rule_id": rule_id,
        "changed_fields": changed,
    }


async def toggle_firewall_rule(ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
    rule_id = arguments["rule_id"]
    enabled = arguments["enabled"]
    existing = await _load_rule(ctx, rule_id)

    logger.info(f"{'Enabling' if enabled else 'Disabling'} legacy firewall rule {rule_id}")
    response = await ctx.client.put(
        endpoints.with_id(endpoints.FIREWALL_RULE_DETAILS, rule_id),
        {**existing, "enabled": enabled},
    )
    rule = updated_record(response, "Firewall rule toggle")

    name = rule.get("name") or rule_id
    return {
        "rule": rule,
        "previous_state": bool(existing.get("enabled")),
        "new_state": enabled,
        "message": f"Firewall rule '{name}' {'enabled' if enabled else 'disabled'}",
    }


LEGACY_FIREWALL_TOOLS = [
    OperationDescriptor(
        name="unifi_get_firewall_rules",
        description="Get legacy firewall rules (deprecated from UniFi Network 9.0)",
        category=ToolCategory.FIREWALL_LEGACY,
        handler=get_firewall_rules,
        requires_feature="legacy_firewall",
        input_schema={
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean", "description": "Filter by enabled status"},
                "ruleset": {"type": "string", "enum": RULESETS, "description": "Filter by rule set"},
                "action": {"type": "string", "enum": ACTIONS, "description": "Filter by action"},
                "sort_by": {
                    "type": "string",
                    "enum": ["name", "rule_index", "action", "protocol"],
                    "default": "rule_index",
                },
                "sort_order": SORT_ORDER_SCHEMA,
            },
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_create_firewall_rule",
        description="Create a legacy firewall rule",
        category=ToolCategory.FIREWALL_LEGACY,
        handler=create_firewall_rule,
        requires_feature="legacy_firewall",
        input_schema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "minLength": 1, "maxLength": 64},
                "action": {"type": "string", "enum": ACTIONS},
                "ruleset": {"type": "string", "enum": RULESETS},
                "rule_index": {"type": "integer", "minimum": 2000, "maximum": 4999},
                "protocol": {"type": "string", "enum": PROTOCOLS},
                "src_address": {"type": "string"},
                "dst_address": {"type": "string"},
                "dst_port": {"type": "string", "pattern": PORT_PATTERN},
                "enabled": {"type": "boolean", "default": True},
                "logging": {"type": "boolean", "default": False},
            },
            "required": ["name", "action", "ruleset", "rule_index"],
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_delete_firewall_rule",
        description="Delete a legacy firewall rule",
        category=ToolCategory.FIREWALL_LEGACY,
        handler=delete_firewall_rule,
        requires_feature="legacy_firewall",
        input_schema={
            "type": "object",
            "properties": {
                "rule_id": {"type": "string", "minLength": 1},
            },
            "required": ["rule_id"],
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_update_firewall_rule",
        description="Update fields of an existing legacy firewall rule",
        category=ToolCategory.FIREWALL_LEGACY,
        handler=update_firewall_rule,
        requires_feature="legacy_firewall",
        input_schema={
            "type": "object",
            "properties": {
                "rule_id": {"type": "string", "minLength": 1},
                "name": {"type": "string", "minLength": 1, "maxLength": 64},
                "enabled": {"type": "boolean"},
                "action": {"type": "string", "enum": ACTIONS},
                "protocol": {"type": "string", "enum": PROTOCOLS},
                "rule_index": {"type": "integer", "minimum": 2000, "maximum": 4999},
                "logging": {"type": "boolean"},
                "src_address": {"type": "string"},
                "dst_address": {"type": "string"},
                "src_port": {"type": "string", "pattern": PORT_PATTERN},
                "dst_port": {"type": "string", "pattern": PORT_PATTERN},
                "description": {"type": "string", "maxLength": 255},
            },
            "required": ["rule_id"],
            "minProperties": 2,
            "additionalProperties": False,
        },
    ),
    OperationDescriptor(
        name="unifi_toggle_firewall_rule",
        description="Enable or disable a legacy firewall rule",
        category=ToolCategory.FIREWALL_LEGACY,
        handler=toggle_firewall_rule,
        requires_feature="legacy_firewall",
        input_schema={
            "type": "object",
            "properties": {
                "rule_id": {"type": "string", "minLength": 1},
                "enabled": {"type": "boolean", "description": "Enable (true) or disable (false) the rule"},
            },
            "required": ["rule_id", "enabled"],
            "additionalProperties": False,
        },
    ),
]
