"""
Run the UniFi MCP server over stdio.

    UNIFI_GATEWAY_IP=192.168.1.1 UNIFI_API_KEY=... python -m unifi_mcp

Logs go to stderr; stdout carries the MCP protocol stream.
"""

from __future__ import annotations

import logging
import os
import sys

from unifi_mcp.config import ClientConfig, ServerConfig
from unifi_mcp.errors import ConfigurationError

logger = logging.getLogger("unifi_mcp")


def main() -> int:
    logging.basicConfig(
        level=os.environ.get("UNIFI_LOG_LEVEL", "INFO").upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        client_config = ClientConfig.from_env()
        server_config = ServerConfig.from_env()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e.detail}")
        return 2

    logger.info(f"Starting with configuration {client_config.redacted()}")

    from unifi_mcp.integrations.mcp import build_server

    try:
        server = build_server(client_config, server_config)
    except ImportError as e:
        logger.error(str(e))
        return 1
    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
