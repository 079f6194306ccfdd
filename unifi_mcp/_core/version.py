"""
Version constants and comparison helpers for unifi-mcp.

- MCP_VERSION: This package's version
- normalize_version(): Extract MAJOR.MINOR.PATCH from a controller version string
- is_at_least(): Dotted-integer "at least" comparison used for feature gating
"""

from __future__ import annotations

import re
from typing import Tuple

# unifi-mcp version (user-facing semver)
MCP_VERSION = "0.1.0"

_SEMVER_RE = re.compile(r"(\d+\.\d+\.\d+)")


def normalize_version(version: str) -> str:
    """
    Extract the first MAJOR.MINOR.PATCH found in a raw version string.

    Args:
        version: Raw version, e.g. "9.0.114.25679" or "v8.5.6-beta"

    Returns:
        "9.0.114", "8.5.6", or the raw string if no pattern matched
    """
    match = _SEMVER_RE.search(version or "")
    return match.group(1) if match else version


def parse_version(version: str) -> Tuple[int, ...]:
    """
    Parse a dotted version string into integer components.

    Non-numeric components count as zero, so "9.x" parses as (9, 0).

    Args:
        version: Version string like "9.0.1" or "v9.0"

    Returns:
        Tuple of integer components
    """
    version = (version or "").strip().lstrip("vV")
    parts = []
    for piece in version.split("."):
        match = re.match(r"^(\d+)", piece)
        parts.append(int(match.group(1)) if match else 0)
    return tuple(parts)


def is_at_least(current: str, minimum: str) -> bool:
    """
    Check if current >= minimum, component-wise.

    Missing trailing components count as zero; equal versions satisfy.

    Example:
        >>> is_at_least("9.0.0", "9.0.0")
        True
        >>> is_at_least("8.9.9", "9.0.0")
        False
        >>> is_at_least("9.1", "9.0.5")
        True
    """
    current_parts = parse_version(current)
    minimum_parts = parse_version(minimum)
    width = max(len(current_parts), len(minimum_parts))
    current_parts += (0,) * (width - len(current_parts))
    minimum_parts += (0,) * (width - len(minimum_parts))
    return current_parts >= minimum_parts
