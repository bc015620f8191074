"""
Synapse Trigger Router

Matches inbound events against workflow triggers and starts executions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog

from synapse_orchestrator.errors import PredictionUnavailableError
from synapse_orchestrator.types import (
    AIPredictionTrigger,
    ConditionTrigger,
    EventTrigger,
    Trigger,
    Workflow,
    WorkflowEvent,
    WorkflowExecution,
)

if TYPE_CHECKING:
    from synapse_orchestrator.engine import WorkflowEngine

logger = structlog.get_logger(__name__)


class TriggerRouter:
    """
    Routes events to workflows.

    Active workflows are visited in descending priority. For each one the
    first matching trigger starts a single execution; the remaining
    triggers of that workflow are not consulted. A failure while matching
    or starting one workflow never prevents the others from being tried.
    Schedule and manual triggers never match events.
    """

    def __init__(self, engine: "WorkflowEngine"):
        self.engine = engine

        self._routed = 0
        self._started = 0
        self._errors = 0

    async def route(self, event: WorkflowEvent) -> List[WorkflowExecution]:
        """
        Route an event.

        Returns:
            Executions started, in workflow priority order
        """
        self._routed += 1
        started: List[WorkflowExecution] = []

        for workflow in await self.engine.registry.active_by_priority():
            try:
                trigger = await self.match(workflow, event)
                if trigger is None:
                    continue

                execution = await self.engine.start(
                    workflow.id,
                    triggered_by=f"smart_trigger_{event.type}",
                    initial_data=dict(event.data),
                )
                started.append(execution)
                self._started += 1

                logger.info(
                    "event_triggered_workflow",
                    event_type=event.type,
                    workflow_id=workflow.id,
                    trigger_id=trigger.id,
                    execution_id=execution.id,
                )

            except Exception as e:
                self._errors += 1
                logger.error(
                    "trigger_routing_error",
                    event_type=event.type,
                    workflow_id=workflow.id,
                    error=str(e),
                )

        return started

    async def match(self, workflow: Workflow, event: WorkflowEvent) -> Optional[Trigger]:
        """First trigger of ``workflow`` that fires for ``event``, if any."""
        for trigger in workflow.triggers:
            if await self.matches(trigger, event):
                return trigger
        return None

    async def matches(self, trigger: Trigger, event: WorkflowEvent) -> bool:
        """Whether a single trigger fires for an event."""
        if isinstance(trigger, EventTrigger):
            return trigger.event_type == event.type

        if isinstance(trigger, ConditionTrigger):
            return await self.engine.evaluator.evaluate_expression(trigger.expression, event.data)

        if isinstance(trigger, AIPredictionTrigger):
            try:
                _, score = await self.engine.models.predict(trigger.model, event.data)
            except PredictionUnavailableError as e:
                logger.warning(
                    "trigger_prediction_unavailable",
                    trigger_id=trigger.id,
                    model=trigger.model,
                    error=str(e),
                )
                return False
            return score >= trigger.threshold

        # Schedule and manual triggers are started elsewhere
        return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            "events_routed": self._routed,
            "executions_started": self._started,
            "errors": self._errors,
        }
