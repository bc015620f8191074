"""
Synapse Decision Maker

Resolves an AI decision step to exactly one concrete action and runs it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import structlog

from synapse_orchestrator.actions.executor import ActionExecutor, RetryCallback
from synapse_orchestrator.decisions.models import PredictionModel
from synapse_orchestrator.errors import ConfigurationError, PredictionUnavailableError
from synapse_orchestrator.types import (
    ActionSpec,
    DecisionOutcome,
    DecisionSpec,
    RetryPolicy,
    WorkflowExecution,
)

logger = structlog.get_logger(__name__)

FALLBACK_LABEL = "fallback"


class DecisionMaker:
    """
    Makes AI decisions.

    The model's label selects one of ``output_actions`` when its
    confidence reaches the step's threshold. Otherwise, or when the model
    is unavailable, the fallback action runs. Exactly one action runs per
    decision.
    """

    def __init__(
        self,
        model: PredictionModel,
        action_executor: ActionExecutor,
    ):
        self.model = model
        self.action_executor = action_executor

    def gather_inputs(self, spec: DecisionSpec, execution: WorkflowExecution) -> Dict[str, Any]:
        """Pick the declared inputs out of the execution variables."""
        return {name: execution.variables.get(name) for name in spec.input_data}

    async def decide(
        self,
        spec: DecisionSpec,
        execution: WorkflowExecution,
        policy: Optional[RetryPolicy] = None,
        on_retry: Optional[RetryCallback] = None,
        cancelled: Optional[asyncio.Event] = None,
    ) -> DecisionOutcome:
        """
        Decide and run the selected action.

        The action runs like a nested action step: ``policy`` (or the
        action's own ``retries``) governs retries in place.

        Raises:
            ConfigurationError: the model picked a label with no action,
                or a fallback was needed but none is defined
            ActionExecutionError: the selected action failed
        """
        inputs = self.gather_inputs(spec, execution)

        try:
            label, confidence = await self.model.predict(
                spec.model, inputs, list(spec.output_actions)
            )
            confidence = min(1.0, max(0.0, confidence))
        except PredictionUnavailableError as e:
            logger.warning(
                "prediction_unavailable",
                execution_id=execution.id,
                model=spec.model,
                error=str(e),
            )
            return await self._run_fallback(spec, execution, 0.0, policy, on_retry, cancelled)

        if confidence < spec.confidence:
            logger.info(
                "decision_below_threshold",
                execution_id=execution.id,
                model=spec.model,
                label=label,
                confidence=confidence,
                threshold=spec.confidence,
            )
            return await self._run_fallback(spec, execution, confidence, policy, on_retry, cancelled)

        action = spec.output_actions.get(label)
        if action is None:
            raise ConfigurationError(
                f"Model {spec.model} chose unknown decision: {label}",
                details={"model": spec.model, "label": label},
            )

        logger.info(
            "decision_made",
            execution_id=execution.id,
            model=spec.model,
            label=label,
            confidence=confidence,
        )

        result = await self._run_action(action, execution, policy, on_retry, cancelled)
        return DecisionOutcome(
            label=label,
            confidence=confidence,
            action=action,
            action_result=result,
        )

    async def _run_fallback(
        self,
        spec: DecisionSpec,
        execution: WorkflowExecution,
        confidence: float,
        policy: Optional[RetryPolicy] = None,
        on_retry: Optional[RetryCallback] = None,
        cancelled: Optional[asyncio.Event] = None,
    ) -> DecisionOutcome:
        if spec.fallback_action is None:
            raise ConfigurationError(
                "Insufficient decision confidence and no fallback defined",
                details={"model": spec.model},
            )

        result = await self._run_action(spec.fallback_action, execution, policy, on_retry, cancelled)
        return DecisionOutcome(
            label=FALLBACK_LABEL,
            confidence=confidence,
            action=spec.fallback_action,
            action_result=result,
        )

    async def _run_action(
        self,
        action: ActionSpec,
        execution: WorkflowExecution,
        policy: Optional[RetryPolicy],
        on_retry: Optional[RetryCallback],
        cancelled: Optional[asyncio.Event],
    ) -> Any:
        return await self.action_executor.execute_with_retry(
            action,
            execution.variables,
            policy,
            on_retry,
            cancelled,
        )
