"""
Synapse Workflow Engine

Main execution engine for workflows.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from synapse_orchestrator.actions.executor import ActionExecutor
from synapse_orchestrator.conditions.evaluator import ConditionEvaluator
from synapse_orchestrator.decisions.maker import DecisionMaker
from synapse_orchestrator.decisions.models import PredictionModel, PredictionModelRegistry
from synapse_orchestrator.errors import ConfigurationError, NotFoundError
from synapse_orchestrator.execution.runner import StepRunner
from synapse_orchestrator.execution.store import ExecutionStore
from synapse_orchestrator.monitoring.monitor import ExecutionMonitor
from synapse_orchestrator.registry import WorkflowRegistry
from synapse_orchestrator.triggers.router import TriggerRouter
from synapse_orchestrator.triggers.scheduler import CronScheduler
from synapse_orchestrator.types import (
    END_WORKFLOW,
    ExecutionStatus,
    LogLevel,
    MonitorEvent,
    MonitorEventType,
    ScheduleTrigger,
    StepOutcome,
    Workflow,
    WorkflowEvent,
    WorkflowExecution,
    WorkflowStep,
)

logger = structlog.get_logger(__name__)

_TERMINAL_EVENTS = {
    ExecutionStatus.COMPLETED: MonitorEventType.COMPLETED,
    ExecutionStatus.FAILED: MonitorEventType.FAILED,
    ExecutionStatus.CANCELLED: MonitorEventType.CANCELLED,
}


class ExecutionControl:
    """Signals the engine uses to steer one running execution."""

    def __init__(self):
        # Set while the execution may make progress
        self.resumed = asyncio.Event()
        self.resumed.set()
        self.cancelled = asyncio.Event()
        self.task: Optional[asyncio.Task] = None


class WorkflowEngine:
    """
    Main workflow execution engine.

    Features:
    - Step graph walking with success/failure branching
    - Parallel fan-out and join
    - Pause, resume and cancel between steps
    - Bounded concurrency
    - Statistics bookkeeping into the registry
    - Lifecycle events for the execution monitor
    """

    def __init__(
        self,
        registry: Optional[WorkflowRegistry] = None,
        store: Optional[ExecutionStore] = None,
        action_executor: Optional[ActionExecutor] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        prediction_model: Optional[PredictionModel] = None,
        monitor: Optional[ExecutionMonitor] = None,
        scheduler: Optional[CronScheduler] = None,
        max_concurrent_executions: int = 100,
        history_limit: int = 1000,
        api_history_limit: int = 50,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.registry = registry or WorkflowRegistry()
        self.store = store or ExecutionStore(history_limit=history_limit)
        self.max_concurrent = max_concurrent_executions
        self.api_history_limit = api_history_limit
        self.clock = clock

        # Components
        self.executor = action_executor or ActionExecutor()
        self.evaluator = condition_evaluator or ConditionEvaluator()
        self.models = prediction_model or PredictionModelRegistry()
        self.decisions = DecisionMaker(self.models, self.executor)
        self.monitor = monitor or ExecutionMonitor()
        if self.monitor.snapshot_provider is None:
            self.monitor.snapshot_provider = self.snapshot
        self.runner = StepRunner(
            self.executor,
            self.evaluator,
            self.decisions,
            self.monitor,
            clock=clock,
        )

        # Event routing and cron scheduling
        self.triggers = TriggerRouter(self)
        self.scheduler = scheduler

        # Control signals of live executions
        self._controls: Dict[str, ExecutionControl] = {}

        # Semaphore for concurrency control
        self._semaphore = asyncio.Semaphore(max_concurrent_executions)

        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the workflow engine."""
        if self._initialized:
            return

        logger.info("Initializing Workflow Engine")
        await self.registry.initialize()

        if self.scheduler:
            await self.scheduler.register_workflows(self.registry, self)
            self.scheduler.start()

        self._initialized = True
        logger.info("Workflow Engine initialized")

    async def shutdown(self) -> None:
        """Shutdown the workflow engine."""
        logger.info("Shutting down Workflow Engine")

        if self.scheduler:
            await self.scheduler.stop()

        tasks = [c.task for c in self._controls.values() if c.task and not c.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.monitor.shutdown()
        await self.registry.shutdown()

        self._initialized = False
        logger.info("Workflow Engine shutdown complete")

    # === Workflow Management ===

    async def register_workflow(self, workflow: Workflow) -> Workflow:
        """Register (or replace) a workflow and refresh its schedules."""
        stored = await self.registry.register(workflow)

        if self.scheduler:
            for job in self.scheduler.jobs():
                if job.workflow_id == stored.id:
                    self.scheduler.unregister(job.id)
            for trigger in stored.triggers:
                if isinstance(trigger, ScheduleTrigger):
                    self.scheduler.on_tick(
                        trigger.cron_expression,
                        lambda workflow_id=stored.id: self.start(workflow_id, triggered_by="scheduler"),
                        workflow_id=stored.id,
                    )

        logger.info(
            "workflow_registered",
            workflow_id=stored.id,
            name=stored.name,
            triggers=len(stored.triggers),
            steps=len(stored.steps),
        )
        return stored

    async def route_event(self, event: WorkflowEvent) -> List[WorkflowExecution]:
        """Start every workflow whose triggers match ``event``."""
        return await self.triggers.route(event)

    # === Execution ===

    async def start(
        self,
        workflow_id: str,
        triggered_by: str = "manual",
        initial_data: Optional[Dict[str, Any]] = None,
    ) -> WorkflowExecution:
        """
        Start a workflow execution.

        Returns as soon as the execution is registered; steps run in a
        background task.

        Args:
            workflow_id: Workflow to execute
            triggered_by: Provenance label ("manual", "smart_trigger_<type>", ...)
            initial_data: Seed for the execution variables

        Raises:
            NotFoundError: the workflow is unknown or inactive
        """
        workflow = await self.registry.get(workflow_id)
        if workflow is None or not workflow.is_active:
            raise NotFoundError(
                f"Workflow not found or inactive: {workflow_id}",
                details={"workflow_id": workflow_id},
            )

        now = self.clock()
        execution = WorkflowExecution(
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            started_at=now,
            variables=dict(initial_data or {}),
            triggered_by=triggered_by,
        )
        execution.add_log(
            LogLevel.INFO,
            f"Workflow started: {workflow.name}",
            data={"triggered_by": triggered_by},
            now=now,
        )

        self.store.add(execution)
        control = ExecutionControl()
        self._controls[execution.id] = control

        await self.registry.mark_started(workflow.id, now)
        self._publish(MonitorEventType.STARTED, execution, data={"triggered_by": triggered_by})

        control.task = asyncio.create_task(self._run_workflow(workflow, execution, control))

        logger.info(
            "execution_started",
            execution_id=execution.id,
            workflow_id=workflow.id,
            triggered_by=triggered_by,
        )

        return execution

    async def run(
        self,
        workflow_id: str,
        triggered_by: str = "manual",
        initial_data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> WorkflowExecution:
        """Start an execution and wait until it is terminal."""
        execution = await self.start(workflow_id, triggered_by, initial_data)
        return await self.wait_for(execution.id, timeout)

    async def wait_for(
        self,
        execution_id: str,
        timeout: Optional[float] = None,
    ) -> WorkflowExecution:
        """
        Wait for an execution's step loop to finish.

        Raises:
            NotFoundError: the execution is unknown
            asyncio.TimeoutError: ``timeout`` seconds elapsed first
        """
        control = self._controls.get(execution_id)
        if control is not None and control.task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(control.task), timeout)
            except asyncio.CancelledError:
                if not control.task.cancelled():
                    raise

        execution = self.store.get(execution_id)
        if execution is None:
            raise NotFoundError(
                f"Execution not found: {execution_id}",
                details={"execution_id": execution_id},
            )
        return execution

    async def _run_workflow(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        control: ExecutionControl,
    ) -> None:
        """Run a workflow execution."""
        async with self._semaphore:
            try:
                await self._walk(workflow, execution, control)

            except asyncio.CancelledError:
                await self._finish(execution, ExecutionStatus.CANCELLED, "Engine shutdown")
                raise

            except Exception as e:
                logger.error(
                    "workflow_execution_failed",
                    execution_id=execution.id,
                    error=str(e),
                )
                await self._finish(execution, ExecutionStatus.FAILED, str(e))

            finally:
                self._controls.pop(execution.id, None)

    async def _walk(
        self,
        workflow: Workflow,
        execution: WorkflowExecution,
        control: ExecutionControl,
    ) -> None:
        """Walk the step graph from the entry step."""
        step = workflow.get_entry_step()
        if step is None:
            raise ConfigurationError(f"Workflow {workflow.id} has no steps")

        while step is not None:
            execution.current_step_id = step.id
            if not await self._checkpoint(execution, control):
                return

            outcome = await self.runner.run_step(execution, step, control.cancelled)

            # Cancelled while the step was in flight
            if execution.is_terminal():
                return

            successor = self._successor(step, outcome)

            if outcome.errored and successor is None:
                if await self._checkpoint(execution, control):
                    await self._finish(
                        execution,
                        ExecutionStatus.FAILED,
                        f"Step {step.id} failed: {outcome.error}",
                    )
                return

            if successor is None or successor == END_WORKFLOW:
                break

            step = workflow.get_step(successor)
            if step is None:
                raise ConfigurationError(
                    f"Step {execution.current_step_id} references unknown step: {successor}",
                    details={"step_id": execution.current_step_id, "successor": successor},
                )

        if await self._checkpoint(execution, control):
            await self._finish(execution, ExecutionStatus.COMPLETED)

    @staticmethod
    def _successor(step: WorkflowStep, outcome: StepOutcome) -> Optional[str]:
        """
        Pick the next step id.

        Errors and false conditions follow ``on_failure``; success follows
        ``on_success``, then ``next_step_id``. ``None`` ends the walk.
        """
        if outcome.errored or not outcome.success:
            return step.on_failure
        return step.on_success or step.next_step_id

    async def _checkpoint(
        self,
        execution: WorkflowExecution,
        control: ExecutionControl,
    ) -> bool:
        """Block while paused. Returns False once the execution is cancelled."""
        if not control.resumed.is_set():
            await control.resumed.wait()
        return not control.cancelled.is_set() and not execution.is_terminal()

    async def _finish(
        self,
        execution: WorkflowExecution,
        status: ExecutionStatus,
        error: Optional[str] = None,
    ) -> bool:
        """Move an execution to a terminal status and do the bookkeeping."""
        if execution.is_terminal():
            return False

        execution.finish(status, error, now=self.clock())

        if status == ExecutionStatus.COMPLETED:
            execution.add_log(LogLevel.INFO, "Workflow completed", now=self.clock())
        elif status == ExecutionStatus.FAILED:
            execution.add_log(LogLevel.ERROR, f"Workflow failed: {error}", now=self.clock())
        else:
            execution.add_log(LogLevel.WARN, "Workflow cancelled", data={"reason": error}, now=self.clock())

        self.store.archive(execution)
        self._publish(
            _TERMINAL_EVENTS[status],
            execution,
            data={"duration_ms": execution.duration_ms, "error": execution.error},
        )

        if status == ExecutionStatus.FAILED:
            logger.error(
                "execution_failed",
                execution_id=execution.id,
                workflow_id=execution.workflow_id,
                error=error,
                recent_logs=[entry.message for entry in execution.recent_logs()],
            )
        else:
            logger.info(
                "execution_completed",
                execution_id=execution.id,
                status=status.value,
                duration_ms=execution.duration_ms,
            )

        # Statistics only count executions that ran to an outcome
        if status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED):
            await self.registry.record_outcome(
                execution.workflow_id,
                success=status == ExecutionStatus.COMPLETED,
            )

        return True

    # === Execution Management ===

    async def pause(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Pause a running execution before its next step."""
        execution = self.store.get(execution_id)
        control = self._controls.get(execution_id)
        if execution is None or control is None or execution.status != ExecutionStatus.RUNNING:
            return None

        execution.status = ExecutionStatus.PAUSED
        control.resumed.clear()
        execution.add_log(
            LogLevel.INFO,
            "Workflow paused",
            step_id=execution.current_step_id,
            now=self.clock(),
        )
        self._publish(MonitorEventType.PAUSED, execution, step_id=execution.current_step_id)

        logger.info("execution_paused", execution_id=execution_id)
        return execution

    async def resume(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Resume a paused execution from its current step."""
        execution = self.store.get(execution_id)
        control = self._controls.get(execution_id)
        if execution is None or control is None or execution.status != ExecutionStatus.PAUSED:
            return None

        execution.status = ExecutionStatus.RUNNING
        execution.add_log(
            LogLevel.INFO,
            "Workflow resumed",
            step_id=execution.current_step_id,
            now=self.clock(),
        )
        control.resumed.set()
        self._publish(MonitorEventType.RESUMED, execution, step_id=execution.current_step_id)

        logger.info("execution_resumed", execution_id=execution_id)
        return execution

    async def cancel(self, execution_id: str) -> Optional[WorkflowExecution]:
        """
        Cancel a running or paused execution.

        The execution is archived at once. An action already in flight
        finishes in the background and its result is still recorded on
        the executed step.
        """
        execution = self.store.get(execution_id)
        control = self._controls.get(execution_id)
        if execution is None or control is None or execution.is_terminal():
            return None

        control.cancelled.set()
        control.resumed.set()
        await self._finish(execution, ExecutionStatus.CANCELLED, "Cancelled by request")

        logger.info("execution_cancelled", execution_id=execution_id)
        return execution

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Get an execution by ID, live or archived."""
        return self.store.get(execution_id)

    def list_executions(self) -> Tuple[List[WorkflowExecution], List[WorkflowExecution], Dict[str, Any]]:
        """Live executions, the recent history window and aggregate stats."""
        return (
            self.store.active(),
            self.store.history(self.api_history_limit),
            self.get_execution_stats(),
        )

    # === Statistics ===

    def get_execution_stats(self) -> Dict[str, Any]:
        """Aggregate statistics over live and archived executions."""
        executions = self.store.all()
        total = len(executions)

        counts = {status: 0 for status in ExecutionStatus}
        for execution in executions:
            counts[execution.status] += 1

        durations = [e.duration_ms for e in executions if e.duration_ms]

        return {
            "total": total,
            "active": len(self.store.active()),
            "completed": counts[ExecutionStatus.COMPLETED],
            "failed": counts[ExecutionStatus.FAILED],
            "cancelled": counts[ExecutionStatus.CANCELLED],
            "paused": counts[ExecutionStatus.PAUSED],
            "average_duration_ms": sum(durations) / len(durations) if durations else 0.0,
            "success_rate": counts[ExecutionStatus.COMPLETED] / total * 100 if total else 0.0,
        }

    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time status pushed to monitor subscribers."""
        return {
            "active_executions": [e.to_dict() for e in self.store.active()],
            "stats": self.get_execution_stats(),
            "timestamp": self.clock().isoformat(),
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "running_tasks": len(self._controls),
            "max_concurrent": self.max_concurrent,
            "executions": self.get_execution_stats(),
            "workflows": self.registry.get_stats(),
            "monitor": self.monitor.get_stats(),
        }

    def _publish(
        self,
        event_type: MonitorEventType,
        execution: WorkflowExecution,
        step_id: Optional[str] = None,
        data: Any = None,
    ) -> None:
        self.monitor.publish(MonitorEvent(
            type=event_type,
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            step_id=step_id,
            data=data,
            timestamp=self.clock(),
        ))
