"""
Periodic health checks for the controller connection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, TYPE_CHECKING

from unifi_mcp.errors import ConnectionFailure
from unifi_mcp.types import HealthReport

if TYPE_CHECKING:
    from unifi_mcp._core.client import UniFiClient

logger = logging.getLogger(__name__)


class HealthMonitor:
    """
    Background task calling ``client.health_check()`` on an interval.

    The monitor holds no locks of its own; each check goes through the
    client like any other request.

    Attributes:
        interval: Seconds between checks
        last_report: Most recent HealthReport, or None before the first check
    """

    def __init__(self, client: "UniFiClient", interval: float = 30.0) -> None:
        self.client = client
        self.interval = interval
        self.last_report: Optional[HealthReport] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop. No-op if already running or interval is 0."""
        if self.running or self.interval <= 0:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Health monitor started (interval={self.interval}s)")

    async def stop(self) -> None:
        """Cancel the background loop. Safe to call multiple times."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Health monitor stopped")

    async def check_once(self) -> HealthReport:
        report = await self.client.health_check()
        self.last_report = report
        if not report.is_healthy:
            logger.warning(f"UniFi controller unhealthy: {report.last_error}")
        return report

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.check_once()


async def wait_healthy(
    client: "UniFiClient",
    timeout: float = 10.0,
    interval: float = 0.5,
) -> HealthReport:
    """
    Wait for the controller to become healthy.

    Polls health_check() until it reports healthy or timeout expires.

    Args:
        client: Client to check
        timeout: Maximum time to wait in seconds
        interval: Time between health checks in seconds

    Returns:
        The first healthy report

    Raises:
        ConnectionFailure: If timeout expires before the controller becomes healthy
    """
    loop = asyncio.get_running_loop()
    start_time = loop.time()
    last_error = None

    while (loop.time() - start_time) < timeout:
        try:
            report = await asyncio.wait_for(client.health_check(), timeout=max(interval, 1.0))
        except asyncio.TimeoutError:
            last_error = "Health check timed out"
        else:
            if report.is_healthy:
                logger.debug("UniFi controller is healthy")
                return report
            last_error = report.last_error

        await asyncio.sleep(interval)

    raise ConnectionFailure(
        f"UniFi controller did not become healthy within {timeout}s. "
        f"Last error: {last_error}",
        retryable=False,
    )
