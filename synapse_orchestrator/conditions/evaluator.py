"""
Synapse Condition Evaluator

Evaluates workflow conditions, by rule or by asking a prediction model.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

import structlog

from synapse_orchestrator.conditions.expressions import ExpressionParser
from synapse_orchestrator.decisions.models import PredictionModel
from synapse_orchestrator.errors import PredictionUnavailableError
from synapse_orchestrator.types import ConditionLogic, ConditionSpec

logger = structlog.get_logger(__name__)

TRUTHY_LABELS = frozenset({"true", "yes", "1", "pass"})


class RuleConditionEvaluator:
    """
    Evaluates a condition's expression with the safe expression parser.

    ``not`` logic negates the expression's truth value. ``and`` and
    ``or`` describe how the expression itself composes its terms.
    """

    def __init__(self, functions: Optional[Dict[str, Callable]] = None):
        self.functions = functions or {}

    def evaluate_expression(self, expression: str, variables: Dict[str, Any]) -> bool:
        parser = ExpressionParser(variables)
        for name, func in self.functions.items():
            parser.register_function(name, func)
        return bool(parser.parse(expression))

    async def evaluate(
        self,
        condition: ConditionSpec,
        variables: Dict[str, Any],
    ) -> bool:
        """
        Evaluate a condition against variables.

        Raises:
            ConditionEvaluationError: the expression cannot be evaluated
        """
        result = self.evaluate_expression(condition.expression, variables)
        if condition.logic == ConditionLogic.NOT:
            result = not result

        logger.debug(
            "condition_evaluated",
            condition_id=condition.id,
            result=result,
        )
        return result


class AIConditionEvaluator:
    """Asks a prediction model whether a condition holds."""

    def __init__(
        self,
        model: PredictionModel,
        model_id: str = "condition_judge",
        threshold: float = 0.5,
    ):
        self.model = model
        self.model_id = model_id
        self.threshold = threshold

    async def evaluate(
        self,
        condition: ConditionSpec,
        variables: Dict[str, Any],
    ) -> bool:
        inputs = {
            "expression": condition.expression,
            "variables": json.loads(json.dumps(variables, default=str)),
        }
        label, confidence = await self.model.predict(self.model_id, inputs, ["true", "false"])
        result = label.strip().lower() in TRUTHY_LABELS and confidence >= self.threshold
        if condition.logic == ConditionLogic.NOT:
            result = not result

        logger.debug(
            "ai_condition_evaluated",
            condition_id=condition.id,
            label=label,
            confidence=confidence,
            result=result,
        )
        return result


class ConditionEvaluator:
    """
    Evaluates workflow conditions.

    Conditions flagged ``ai_evaluated`` go to the AI evaluator when one
    is configured, falling back to rules if the model is unavailable.
    Everything else is evaluated by rule.
    """

    def __init__(
        self,
        rules: Optional[RuleConditionEvaluator] = None,
        ai: Optional[AIConditionEvaluator] = None,
    ):
        self.rules = rules or RuleConditionEvaluator()
        self.ai = ai

    async def evaluate(
        self,
        condition: ConditionSpec,
        variables: Dict[str, Any],
    ) -> bool:
        """
        Evaluate a condition against variables.

        Raises:
            ConditionEvaluationError: rule evaluation failed
        """
        if condition.ai_evaluated and self.ai is not None:
            try:
                return await self.ai.evaluate(condition, variables)
            except PredictionUnavailableError as e:
                logger.warning(
                    "ai_condition_unavailable",
                    condition_id=condition.id,
                    error=str(e),
                )

        return await self.rules.evaluate(condition, variables)

    async def evaluate_expression(self, expression: str, variables: Dict[str, Any]) -> bool:
        """Evaluate a bare expression, as used by condition triggers."""
        return self.rules.evaluate_expression(expression, variables)
