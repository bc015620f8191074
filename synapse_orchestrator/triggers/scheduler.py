"""
Synapse Cron Scheduler

Drives schedule-triggered workflows from cron expressions.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Union

import structlog
from croniter import croniter

from synapse_orchestrator.errors import ConfigurationError
from synapse_orchestrator.types import ScheduleTrigger

if TYPE_CHECKING:
    from synapse_orchestrator.engine import WorkflowEngine
    from synapse_orchestrator.registry import WorkflowRegistry

logger = structlog.get_logger(__name__)

TickCallback = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass
class CronJob:
    """A callback bound to a cron expression."""
    cron_expression: str
    callback: TickCallback
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: Optional[str] = None
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    run_count: int = 0
    consecutive_failures: int = 0

    def schedule_after(self, moment: datetime) -> None:
        self.next_run = croniter(self.cron_expression, moment).get_next(datetime)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "cron_expression": self.cron_expression,
            "workflow_id": self.workflow_id,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "consecutive_failures": self.consecutive_failures,
        }


class CronScheduler:
    """
    Minimal cron clock.

    ``tick(now)`` fires every job whose next run time has passed, so
    tests can drive it without sleeping; ``start()`` runs the same tick
    every ``check_interval`` seconds in the background.
    """

    def __init__(
        self,
        check_interval: float = 60.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.check_interval = check_interval
        self.clock = clock

        self._jobs: Dict[str, CronJob] = {}
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    def on_tick(
        self,
        cron_expression: str,
        callback: TickCallback,
        workflow_id: Optional[str] = None,
    ) -> CronJob:
        """
        Call ``callback`` whenever ``cron_expression`` comes due.

        Raises:
            ConfigurationError: the expression is not valid cron
        """
        if not croniter.is_valid(cron_expression):
            raise ConfigurationError(
                f"Invalid cron expression: {cron_expression}",
                details={"cron_expression": cron_expression},
            )

        job = CronJob(cron_expression=cron_expression, callback=callback, workflow_id=workflow_id)
        job.schedule_after(self.clock())
        self._jobs[job.id] = job

        logger.info(
            "schedule_registered",
            job_id=job.id,
            cron=cron_expression,
            workflow_id=workflow_id,
            next_run=job.next_run.isoformat(),
        )
        return job

    def unregister(self, job_id: str) -> bool:
        """Remove a job."""
        return self._jobs.pop(job_id, None) is not None

    def jobs(self) -> List[CronJob]:
        return list(self._jobs.values())

    async def register_workflows(
        self,
        registry: "WorkflowRegistry",
        engine: "WorkflowEngine",
    ) -> List[CronJob]:
        """Create a job for every schedule trigger of every registered workflow."""
        for job in [j for j in self._jobs.values() if j.workflow_id]:
            self.unregister(job.id)

        created = []
        for workflow in await registry.list():
            for trigger in workflow.triggers:
                if not isinstance(trigger, ScheduleTrigger):
                    continue

                def start(workflow_id: str = workflow.id):
                    return engine.start(workflow_id, triggered_by="scheduler")

                try:
                    created.append(self.on_tick(trigger.cron_expression, start, workflow.id))
                except ConfigurationError as e:
                    logger.error(
                        "schedule_registration_error",
                        workflow_id=workflow.id,
                        error=e.message,
                    )

        return created

    async def tick(self, now: Optional[datetime] = None) -> int:
        """Fire due jobs. Returns how many fired."""
        now = now or self.clock()
        fired = 0

        for job in list(self._jobs.values()):
            if job.next_run is None or now < job.next_run:
                continue

            try:
                result = job.callback()
                if asyncio.iscoroutine(result):
                    await result
                job.consecutive_failures = 0
                logger.info("schedule_triggered", job_id=job.id, workflow_id=job.workflow_id)
            except Exception as e:
                job.consecutive_failures += 1
                logger.error(
                    "schedule_trigger_error",
                    job_id=job.id,
                    workflow_id=job.workflow_id,
                    error=str(e),
                )

            job.last_run = now
            job.run_count += 1
            job.schedule_after(now)
            fired += 1

        return fired

    def start(self) -> None:
        """Start the background loop."""
        if self._task and not self._task.done():
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("Scheduler started", jobs=len(self._jobs))

    async def stop(self) -> None:
        """Stop the background loop."""
        self._shutdown_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        """Background loop for schedule triggers."""
        while not self._shutdown_event.is_set():
            await asyncio.sleep(self.check_interval)
            await self.tick()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "jobs": [job.to_dict() for job in self._jobs.values()],
        }
