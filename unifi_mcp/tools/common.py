"""
Helpers shared by the domain handlers.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from unifi_mcp.errors import ExecutionError, ResourceNotFound, UniFiMCPError
from unifi_mcp.types import ToolContext

logger = logging.getLogger(__name__)

MAC_PATTERN = r"^([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}$"

SORT_ORDER_SCHEMA = {
    "type": "string",
    "enum": ["asc", "desc"],
    "description": "Sort order",
    "default": "asc",
}


def normalize_mac(mac: str) -> str:
    return mac.replace("-", ":").lower()


def records(envelope: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Dict records from a normalized envelope's data list."""
    return [item for item in envelope.get("data") or [] if isinstance(item, dict)]


def first_record(envelope: Mapping[str, Any], resource: str, identifier: str) -> Dict[str, Any]:
    """
    First record of an envelope.

    Raises:
        ResourceNotFound: If the envelope holds no records
    """
    items = records(envelope)
    if not items:
        raise ResourceNotFound(
            f"{resource} '{identifier}' not found",
            details={"resource": resource, "identifier": identifier},
        )
    return items[0]


def ensure_ok(envelope: Mapping[str, Any], action: str) -> None:
    """
    Raise if the controller reported a failed command.

    Raises:
        ExecutionError: If meta.rc is not "ok"
    """
    meta = envelope.get("meta") or {}
    if meta.get("rc") != "ok":
        raise ExecutionError(
            f"{action} failed: {meta.get('msg') or 'unknown error'}",
            details={"meta": dict(meta)},
        )


def sort_records(
    items: List[Dict[str, Any]],
    field: Optional[str],
    order: str = "asc",
) -> List[Dict[str, Any]]:
    """Sort by one field; records missing the field go last."""
    if not field:
        return items
    present = [item for item in items if item.get(field) is not None]
    missing = [item for item in items if item.get(field) is None]
    reverse = order == "desc"
    try:
        present.sort(key=lambda item: item[field], reverse=reverse)
    except TypeError:
        present.sort(key=lambda item: str(item[field]), reverse=reverse)
    return present + missing


def count_by(items: List[Dict[str, Any]], key: Callable[[Dict[str, Any]], Any]) -> Dict[str, int]:
    return {str(value): count for value, count in Counter(key(item) for item in items).items()}


async def optional_record(
    ctx: ToolContext,
    path: str,
    what: str,
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Fetch a supplementary record that should not fail the whole call.

    Returns:
        (record or None, warning message or None)
    """
    try:
        items = records(await ctx.client.get(path))
    except UniFiMCPError as e:
        logger.warning(f"Could not fetch {what}: [{e.kind.value}] {e.detail}")
        return None, f"Could not fetch {what}: {e.detail}"
    return (items[0] if items else None), None


def updated_record(envelope: Mapping[str, Any], action: str) -> Dict[str, Any]:
    """
    First record of a write response.

    Raises:
        ExecutionError: If the controller answered without a record
    """
    items = records(envelope)
    if not items:
        raise ExecutionError(f"{action} failed: controller returned no record")
    return items[0]
