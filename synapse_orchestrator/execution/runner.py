"""
Synapse Step Runner

Runs a single workflow step, keeping the execution's audit trail
(executed steps and logs) and the monitor up to date.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog

from synapse_orchestrator.actions.executor import ActionExecutor, RetryCallback
from synapse_orchestrator.conditions.evaluator import ConditionEvaluator
from synapse_orchestrator.decisions.maker import DecisionMaker
from synapse_orchestrator.monitoring.monitor import ExecutionMonitor
from synapse_orchestrator.types import (
    ActionStep,
    AIDecisionStep,
    ConditionStep,
    ExecutedStep,
    LogLevel,
    MonitorEvent,
    MonitorEventType,
    ParallelStep,
    StepOutcome,
    WaitStep,
    WorkflowExecution,
    WorkflowStep,
)

logger = structlog.get_logger(__name__)


class StepRunner:
    """
    Executes one step of any type.

    Every call appends exactly one ``ExecutedStep`` to the execution
    (parallel children append their own) before doing any work, and
    finalises it afterwards. Errors never escape ``run_step``; they come
    back as a failed ``StepOutcome``.
    """

    def __init__(
        self,
        action_executor: ActionExecutor,
        condition_evaluator: ConditionEvaluator,
        decision_maker: DecisionMaker,
        monitor: Optional[ExecutionMonitor] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.action_executor = action_executor
        self.condition_evaluator = condition_evaluator
        self.decision_maker = decision_maker
        self.monitor = monitor
        self.clock = clock

        self._handlers = {
            ActionStep: self._run_action,
            ConditionStep: self._run_condition,
            AIDecisionStep: self._run_decision,
            ParallelStep: self._run_parallel,
            WaitStep: self._run_wait,
        }

    async def run_step(
        self,
        execution: WorkflowExecution,
        step: WorkflowStep,
        cancelled: Optional[asyncio.Event] = None,
    ) -> StepOutcome:
        """
        Run a step.

        Args:
            execution: The owning execution
            step: Step to run
            cancelled: Set when the execution is cancelled; waits end early

        Returns:
            The step outcome
        """
        record = ExecutedStep(step_id=step.id)
        record.start(self.clock())
        execution.executed_steps.append(record)

        execution.add_log(
            LogLevel.INFO,
            f"Step started: {step.name or step.id}",
            step_id=step.id,
            now=self.clock(),
        )
        self._publish(MonitorEventType.STEP_STARTED, execution, step.id, {"type": step.type})

        handler = self._handlers.get(type(step))
        try:
            if handler is None:
                raise TypeError(f"Unsupported step type: {type(step).__name__}")
            outcome = await handler(execution, step, record, cancelled)
        except Exception as e:
            outcome = StepOutcome(success=False, error=str(e) or type(e).__name__)
            logger.error(
                "step_error",
                execution_id=execution.id,
                step_id=step.id,
                error=outcome.error,
                error_type=type(e).__name__,
            )

        if outcome.errored:
            if outcome.result is not None:
                record.result = outcome.result
            record.fail(outcome.error, self.clock())
            execution.add_log(
                LogLevel.ERROR,
                f"Step failed: {step.name or step.id}",
                step_id=step.id,
                data={"error": outcome.error, "retry_count": record.retry_count},
                now=self.clock(),
            )
            self._publish(MonitorEventType.STEP_FAILED, execution, step.id, {"error": outcome.error})
        else:
            record.complete(outcome.result, self.clock())
            execution.add_log(
                LogLevel.INFO,
                f"Step completed: {step.name or step.id}",
                step_id=step.id,
                data={"duration_ms": record.duration_ms},
                now=self.clock(),
            )
            self._publish(
                MonitorEventType.STEP_COMPLETED,
                execution,
                step.id,
                {"duration_ms": record.duration_ms, "success": outcome.success},
            )

        return outcome

    # === Step types ===

    async def _run_action(
        self,
        execution: WorkflowExecution,
        step: ActionStep,
        record: ExecutedStep,
        cancelled: Optional[asyncio.Event],
    ) -> StepOutcome:
        result = await self.action_executor.execute_with_retry(
            step.action,
            execution.variables,
            step.retry_policy,
            self._retry_logger(execution, step, record),
            cancelled,
        )
        execution.variables[f"{step.id}_result"] = result
        return StepOutcome(success=True, result=result)

    async def _run_condition(
        self,
        execution: WorkflowExecution,
        step: ConditionStep,
        record: ExecutedStep,
        cancelled: Optional[asyncio.Event],
    ) -> StepOutcome:
        variables = {**execution.variables, **step.condition.variables}
        result = await self.condition_evaluator.evaluate(step.condition, variables)
        return StepOutcome(success=result, result=result)

    async def _run_decision(
        self,
        execution: WorkflowExecution,
        step: AIDecisionStep,
        record: ExecutedStep,
        cancelled: Optional[asyncio.Event],
    ) -> StepOutcome:
        decision = await self.decision_maker.decide(
            step.decision,
            execution,
            step.retry_policy,
            self._retry_logger(execution, step, record),
            cancelled,
        )
        execution.variables[f"{step.id}_decision"] = decision.label
        execution.add_log(
            LogLevel.INFO,
            f"Decision {decision.label} (confidence {decision.confidence:.2f})",
            step_id=step.id,
            now=self.clock(),
        )
        return StepOutcome(success=True, result=decision.to_dict())

    async def _run_parallel(
        self,
        execution: WorkflowExecution,
        step: ParallelStep,
        record: ExecutedStep,
        cancelled: Optional[asyncio.Event],
    ) -> StepOutcome:
        # Children always run to completion; a failure does not cancel siblings
        outcomes = await asyncio.gather(
            *(self.run_step(execution, child, cancelled) for child in step.steps)
        )

        results: List[Dict[str, Any]] = []
        first_error: Optional[str] = None
        for child, outcome in zip(step.steps, outcomes):
            entry: Dict[str, Any] = {"step_id": child.id}
            if outcome.errored:
                entry["status"] = "failed"
                entry["error"] = outcome.error
                first_error = first_error or f"{child.id}: {outcome.error}"
            else:
                entry["status"] = "completed"
                entry["result"] = outcome.result
            results.append(entry)

        if first_error:
            return StepOutcome(success=False, result=results, error=first_error)
        return StepOutcome(success=True, result=results)

    async def _run_wait(
        self,
        execution: WorkflowExecution,
        step: WaitStep,
        record: ExecutedStep,
        cancelled: Optional[asyncio.Event],
    ) -> StepOutcome:
        seconds = max(0.0, step.wait_duration_ms) / 1000
        interrupted = False

        if cancelled is None:
            await asyncio.sleep(seconds)
        else:
            try:
                await asyncio.wait_for(cancelled.wait(), timeout=seconds)
                interrupted = True
            except asyncio.TimeoutError:
                pass

        result = {"waited": step.wait_duration_ms, "timestamp": self.clock().isoformat()}
        if interrupted:
            result["interrupted"] = True
        return StepOutcome(success=True, result=result)

    def _retry_logger(
        self,
        execution: WorkflowExecution,
        step: WorkflowStep,
        record: ExecutedStep,
    ) -> RetryCallback:
        """Retry callback that counts retries on the step record."""
        def on_retry(retry_count: int, error: BaseException, delay_ms: float) -> None:
            record.retry_count = retry_count
            execution.add_log(
                LogLevel.WARN,
                f"Retrying step {step.id} (retry {retry_count})",
                step_id=step.id,
                data={"error": str(error), "delay_ms": delay_ms},
                now=self.clock(),
            )

        return on_retry

    def _publish(
        self,
        event_type: MonitorEventType,
        execution: WorkflowExecution,
        step_id: Optional[str] = None,
        data: Any = None,
    ) -> None:
        if self.monitor is None:
            return
        self.monitor.publish(MonitorEvent(
            type=event_type,
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            step_id=step_id,
            data=data,
            timestamp=self.clock(),
        ))
