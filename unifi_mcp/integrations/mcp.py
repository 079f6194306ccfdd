"""
MCP SDK Integration, requires `pip install unifi-mcp[mcp]`

Exposes the tool registry over the Model Context Protocol using the
SDK's low-level server, so the advertised tool list is recomputed from
controller capabilities on every listing.

Usage:
    from unifi_mcp.config import ClientConfig, ServerConfig
    from unifi_mcp.integrations.mcp import build_server

    server = build_server(ClientConfig.from_env(), ServerConfig.from_env())
    server.run()  # stdio transport
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

# Check if MCP SDK is available
try:
    from mcp.server.lowlevel import Server
    from mcp.server.stdio import stdio_server
    from mcp.types import CallToolResult, TextContent, Tool
    MCP_AVAILABLE = True
except ImportError:
    Server = None  # type: ignore
    stdio_server = None  # type: ignore
    CallToolResult = None  # type: ignore
    TextContent = None  # type: ignore
    Tool = None  # type: ignore
    MCP_AVAILABLE = False

from unifi_mcp._core.client import UniFiClient
from unifi_mcp._core.health import HealthMonitor
from unifi_mcp._core.transport import Transport
from unifi_mcp.capabilities import CapabilityDetector
from unifi_mcp.config import ClientConfig, ServerConfig
from unifi_mcp.errors import UniFiMCPError
from unifi_mcp.registry import ToolRegistry
from unifi_mcp.tools import BlockScheduler, register_default_tools

logger = logging.getLogger(__name__)


def _require_mcp_server() -> None:
    """Raise ImportError if the MCP server SDK is not available."""
    if not MCP_AVAILABLE:
        raise ImportError(
            "MCP SDK integration requires the 'mcp' package. "
            "Install with: pip install unifi-mcp[mcp]"
        )


class UniFiMCPServer:
    """
    MCP server backed by a ToolRegistry.

    - list_tools: the registry's external catalog (full catalog while
      disconnected, capability-filtered once connected)
    - call_tool: registry.invoke(), returned as JSON text with isError set
      for failed invocations

    Attributes:
        client: UniFiClient shared by all handlers
        detector: CapabilityDetector for the client
        registry: ToolRegistry holding the registered tools
        config: ServerConfig
        health_monitor: Background health checker started by run_stdio()
        scheduler: BlockScheduler owning scheduled-block jobs, closed on shutdown
    """

    def __init__(
        self,
        client: UniFiClient,
        detector: CapabilityDetector,
        registry: ToolRegistry,
        config: Optional[ServerConfig] = None,
        scheduler: Optional[BlockScheduler] = None,
    ) -> None:
        _require_mcp_server()

        self.client = client
        self.detector = detector
        self.registry = registry
        self.config = config or ServerConfig()
        self.scheduler = scheduler
        self.health_monitor = HealthMonitor(client, self.config.health_check_interval)

        self._server = Server(self.config.name, version=self.config.version)
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        self._server.list_tools()(self.list_tools)
        # Arguments are validated by the registry so failures keep the result shape
        self._server.call_tool(validate_input=False)(self.call_tool)

    @property
    def server(self) -> "Server":
        """Access the underlying low-level MCP server."""
        return self._server

    async def list_tools(self) -> List["Tool"]:
        catalog = await self.registry.list_for_external_catalog()
        return [
            Tool(
                name=entry["name"],
                description=entry["description"],
                inputSchema=entry["inputSchema"],
            )
            for entry in catalog
        ]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> "CallToolResult":
        result = await self.registry.invoke(name, arguments or {})
        payload = json.dumps(result.to_dict(), indent=2, default=str)
        return CallToolResult(
            content=[TextContent(type="text", text=payload)],
            isError=not result.success,
        )

    async def connect_on_start(self) -> bool:
        """
        Try to connect before serving.

        A failed connection is logged and leaves the server usable: the
        full catalog stays discoverable and unifi_connect can retry.
        """
        try:
            await self.client.connect()
        except UniFiMCPError as e:
            logger.warning(f"Initial connection to UniFi controller failed: [{e.kind.value}] {e.detail}")
            return False
        return True

    async def run_stdio(self, connect: bool = True) -> None:
        """Serve over stdio until the client disconnects, then shut down."""
        if connect:
            await self.connect_on_start()
        self.health_monitor.start()
        try:
            async with stdio_server() as (read_stream, write_stream):
                logger.info(f"{self.config.name} {self.config.version} ready on stdio")
                await self._server.run(
                    read_stream,
                    write_stream,
                    self._server.create_initialization_options(),
                )
        finally:
            await self.shutdown()

    def run(self) -> None:
        asyncio.run(self.run_stdio())

    async def shutdown(self) -> None:
        """Stop monitoring and scheduled jobs, disconnect and clear the registry."""
        logger.info(f"Shutting down {self.config.name}")
        await self.health_monitor.stop()
        if self.scheduler is not None:
            await self.scheduler.close()
        await self.client.close()
        self.registry.cleanup()


def build_server(
    client_config: ClientConfig,
    server_config: Optional[ServerConfig] = None,
    transport: Optional[Transport] = None,
) -> UniFiMCPServer:
    """
    Wire client, detector and registry into an MCP server.

    Args:
        client_config: Controller connection settings
        server_config: Server settings and tool toggles
        transport: Optional transport override (tests)

    Returns:
        UniFiMCPServer with the default tools registered
    """
    _require_mcp_server()
    server_config = server_config or ServerConfig()

    client = UniFiClient(client_config, transport=transport)
    detector = CapabilityDetector(client)
    registry = ToolRegistry(client, detector)
    scheduler = BlockScheduler()
    successful, failed = register_default_tools(registry, server_config, scheduler)
    logger.info(f"Registered {successful} tools ({failed} failed)")

    return UniFiMCPServer(client, detector, registry, server_config, scheduler=scheduler)
