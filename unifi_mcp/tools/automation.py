"""
Automation tools: delayed and time-boxed client blocks.

Scheduled blocks run as asyncio tasks inside the server process and do
not survive a restart. A job blocks the client after ``delay_seconds``
and, when ``duration_seconds`` is given, unblocks it again once that
duration has passed.

Usage:
    scheduler = BlockScheduler()
    registry.register_batch(scheduler.tools())

    result = await registry.invoke("unifi_schedule_device_block", {
        "mac": "aa:bb:cc:dd:ee:ff",
        "delay_seconds": 3600,
        "duration_seconds": 1800,
    })
    ...
    await scheduler.close()
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

from unifi_mcp.errors import ResourceNotFound, UniFiMCPError
from unifi_mcp.tools import endpoints
from unifi_mcp.tools.common import MAC_PATTERN, ensure_ok, normalize_mac
from unifi_mcp.types import OperationDescriptor, ToolCategory, ToolContext, ToolOutput, utcnow

if TYPE_CHECKING:
    from unifi_mcp._core.client import UniFiClient

logger = logging.getLogger(__name__)

MAX_SCHEDULE_SECONDS = 7 * 24 * 60 * 60


class JobStatus(str, Enum):
    PENDING = "pending"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.BLOCKED)


@dataclass
class ScheduledBlock:
    """
    One scheduled client block.

    Attributes:
        job_id: Identifier returned to the caller
        mac: Normalized client MAC address
        block_at: When the block is sent
        unblock_at: When the unblock is sent, or None for a permanent block
        status: Current JobStatus
        error: Failure detail when status is FAILED
    """
    job_id: str
    mac: str
    block_at: datetime
    unblock_at: Optional[datetime] = None
    description: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    error: Optional[str] = None
    task: Optional["asyncio.Task[None]"] = field(default=None, repr=False, compare=False)

    @property
    def active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "mac": self.mac,
            "block_at": self.block_at.isoformat(),
            "unblock_at": self.unblock_at.isoformat() if self.unblock_at else None,
            "description": self.description,
            "status": self.status.value,
            "error": self.error,
        }


class BlockScheduler:
    """
    Owner of the scheduled-block jobs and their tools.

    Args:
        sleep: Awaitable sleep used for the delays (injectable for tests)
        clock: Source of the timestamps reported for each job
    """

    def __init__(
        self,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or utcnow
        self._jobs: Dict[str, ScheduledBlock] = {}

    @property
    def jobs(self) -> List[ScheduledBlock]:
        return list(self._jobs.values())

    def get(self, job_id: str) -> ScheduledBlock:
        """
        Raises:
            ResourceNotFound: If no job has this id
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise ResourceNotFound(
                f"Scheduled block '{job_id}' not found",
                details={"resource": "Scheduled block", "identifier": job_id},
            )
        return job

    def schedule(
        self,
        client: "UniFiClient",
        mac: str,
        delay_seconds: float = 0,
        duration_seconds: Optional[float] = None,
        description: Optional[str] = None,
    ) -> ScheduledBlock:
        """Create a job and start its task on the running loop."""
        now = self._clock()
        block_at = now + timedelta(seconds=delay_seconds)
        job = ScheduledBlock(
            job_id=uuid.uuid4().hex[:12],
            mac=normalize_mac(mac),
            block_at=block_at,
            unblock_at=block_at + timedelta(seconds=duration_seconds) if duration_seconds else None,
            description=description,
        )
        job.task = asyncio.get_running_loop().create_task(
            self._run(client, job, delay_seconds, duration_seconds)
        )
        self._jobs[job.job_id] = job
        logger.info(f"Scheduled block {job.job_id} of {job.mac} at {job.block_at.isoformat()}")
        return job

    def cancel(self, job_id: str) -> ScheduledBlock:
        """
        Cancel a pending or running job.

        Cancelling a job that already blocked the client leaves it blocked.

        Raises:
            ResourceNotFound: If no job has this id
        """
        job = self.get(job_id)
        if job.active:
            job.status = JobStatus.CANCELLED
            if job.task is not None:
                job.task.cancel()
            logger.info(f"Cancelled scheduled block {job_id}")
        return job

    async def close(self) -> None:
        """Cancel every active job and wait for the tasks to finish."""
        tasks = []
        for job in self._jobs.values():
            if job.active and job.task is not None:
                job.status = JobStatus.CANCELLED
                job.task.cancel()
                tasks.append(job.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug(f"Cancelled {len(tasks)} scheduled blocks")

    async def _run(
        self,
        client: "UniFiClient",
        job: ScheduledBlock,
        delay_seconds: float,
        duration_seconds: Optional[float],
    ) -> None:
        try:
            await self._sleep(delay_seconds)
            response = await client.post(endpoints.CLIENT_BLOCK, {"cmd": "block-sta", "mac": job.mac})
            ensure_ok(response, "Scheduled client block")
            logger.info(f"Scheduled block {job.job_id}: blocked {job.mac}")

            if not duration_seconds:
                job.status = JobStatus.COMPLETED
                return

            job.status = JobStatus.BLOCKED
            await self._sleep(duration_seconds)
            response = await client.post(endpoints.CLIENT_UNBLOCK, {"cmd": "unblock-sta", "mac": job.mac})
            ensure_ok(response, "Scheduled client unblock")
            job.status = JobStatus.COMPLETED
            logger.info(f"Scheduled block {job.job_id}: unblocked {job.mac}")
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            raise
        except UniFiMCPError as e:
            job.status = JobStatus.FAILED
            job.error = e.detail
            logger.error(f"Scheduled block {job.job_id} of {job.mac} failed: {job.error}")

    # =========================================================================
    # Tool handlers
    # =========================================================================

    async def schedule_block(self, ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
        job = self.schedule(
            ctx.client,
            arguments["mac"],
            delay_seconds=arguments.get("delay_seconds", 0),
            duration_seconds=arguments.get("duration_seconds"),
            description=arguments.get("description"),
        )
        warnings = ["Scheduled blocks are kept in memory and are lost when the server stops"]
        if job.unblock_at is None:
            warnings.append("No duration given; the client stays blocked until unblocked manually")
        return ToolOutput(data=job.to_dict(), warnings=warnings)

    async def list_blocks(self, ctx: ToolContext, arguments: Dict[str, Any]) -> Dict[str, Any]:
        jobs = self.jobs
        if not arguments.get("include_finished", False):
            jobs = [job for job in jobs if job.active]
        return {"jobs": [job.to_dict() for job in jobs], "total": len(jobs)}

    async def cancel_block(self, ctx: ToolContext, arguments: Dict[str, Any]) -> ToolOutput:
        job = self.get(arguments["job_id"])
        was_blocked = job.status == JobStatus.BLOCKED
        self.cancel(job.job_id)
        warnings = []
        if was_blocked:
            warnings.append(f"Client {job.mac} was already blocked and stays blocked")
        return ToolOutput(data=job.to_dict(), warnings=warnings)

    def tools(self) -> List[OperationDescriptor]:
        """Descriptors bound to this scheduler."""
        return [
            OperationDescriptor(
                name="unifi_schedule_device_block",
                description="Schedule a client block after a delay, optionally lifting it after a duration",
                category=ToolCategory.AUTOMATION,
                handler=self.schedule_block,
                input_schema={
                    "type": "object",
                    "properties": {
                        "mac": {"type": "string", "pattern": MAC_PATTERN, "description": "Client MAC address"},
                        "delay_seconds": {
                            "type": "integer",
                            "minimum": 0,
                            "maximum": MAX_SCHEDULE_SECONDS,
                            "default": 0,
                            "description": "Seconds until the block is applied",
                        },
                        "duration_seconds": {
                            "type": "integer",
                            "minimum": 60,
                            "maximum": MAX_SCHEDULE_SECONDS,
                            "description": "Seconds the block lasts before the client is unblocked",
                        },
                        "description": {"type": "string", "maxLength": 255},
                    },
                    "required": ["mac"],
                    "additionalProperties": False,
                },
            ),
            OperationDescriptor(
                name="unifi_list_scheduled_blocks",
                description="List scheduled client blocks",
                category=ToolCategory.AUTOMATION,
                handler=self.list_blocks,
                requires_connection=False,
                input_schema={
                    "type": "object",
                    "properties": {
                        "include_finished": {
                            "type": "boolean",
                            "default": False,
                            "description": "Include completed, failed and cancelled jobs",
                        },
                    },
                    "additionalProperties": False,
                },
            ),
            OperationDescriptor(
                name="unifi_cancel_scheduled_block",
                description="Cancel a scheduled client block",
                category=ToolCategory.AUTOMATION,
                handler=self.cancel_block,
                requires_connection=False,
                input_schema={
                    "type": "object",
                    "properties": {
                        "job_id": {"type": "string", "minLength": 1},
                    },
                    "required": ["job_id"],
                    "additionalProperties": False,
                },
            ),
        ]
