"""
Synapse Workflow Conditions

Rule-based and model-judged evaluation of step conditions.
"""

from synapse_orchestrator.conditions.evaluator import (
    AIConditionEvaluator,
    ConditionEvaluator,
    RuleConditionEvaluator,
)
from synapse_orchestrator.conditions.expressions import ExpressionParser, evaluate_expression

__all__ = [
    "AIConditionEvaluator",
    "ConditionEvaluator",
    "RuleConditionEvaluator",
    "ExpressionParser",
    "evaluate_expression",
]
