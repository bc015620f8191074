"""
Tests for condition evaluation.
"""

import pytest

from conftest import FixedPredictionModel

from synapse_orchestrator.conditions.evaluator import (
    AIConditionEvaluator,
    ConditionEvaluator,
    RuleConditionEvaluator,
)
from synapse_orchestrator.conditions.expressions import ExpressionParser, evaluate_expression, normalize
from synapse_orchestrator.decisions.models import PredictionModelRegistry
from synapse_orchestrator.errors import ConditionEvaluationError
from synapse_orchestrator.types import ConditionLogic, ConditionSpec


class TestExpressionParser:
    """Tests for the expression language."""

    def test_comparisons_and_arithmetic(self):
        variables = {"amount": 1200, "budget": 1000, "rate": 1.1}
        assert evaluate_expression("amount > budget", variables) is True
        assert evaluate_expression("budget * rate >= amount", variables) is False
        assert evaluate_expression("0 < amount < 2000", variables) is True

    def test_attribute_and_subscript_access(self):
        variables = {"client": {"tier": "gold", "invoices": [10, 20, 30]}}
        assert evaluate_expression("client.tier == 'gold'", variables) is True
        assert evaluate_expression("client.invoices[1]", variables) == 20
        assert evaluate_expression("client['tier']", variables) == "gold"
        assert evaluate_expression("client.invoices[10]", variables) is None

    def test_dashboard_operators(self):
        variables = {"status": "overdue", "days": 45}
        assert evaluate_expression("status === 'overdue' && days > 30", variables) is True
        assert evaluate_expression("status !== 'overdue' || days < 30", variables) is False
        assert evaluate_expression("flag === null", variables) is True

    def test_aliases_leave_string_literals_alone(self):
        assert normalize("note == 'true && false'") == "note == 'true && false'"

    def test_unknown_names_are_none(self):
        assert evaluate_expression("missing", {}) is None
        assert evaluate_expression("missing.deeper", {}) is None
        assert evaluate_expression("missing > 3", {}) is False

    def test_functions(self):
        variables = {"items": [3, 9, 4], "name": "ACME"}
        assert evaluate_expression("len(items) == 3", variables) is True
        assert evaluate_expression("max(items)", variables) == 9
        assert evaluate_expression("lower(name) == 'acme'", variables) is True

    def test_custom_function(self):
        parser = ExpressionParser({"score": 0.42})
        parser.register_function("pct", lambda x: round(x * 100))
        assert parser.parse("pct(score)") == 42

    def test_ternary_and_membership(self):
        variables = {"tier": "gold", "tiers": ["gold", "platinum"]}
        assert evaluate_expression("tier in tiers", variables) is True
        assert evaluate_expression("'vip' if tier in tiers else 'standard'", variables) == "vip"

    @pytest.mark.parametrize("expression", [
        "",
        "amount >",
        "__import__('os')",
        "client.__class__",
        "[x for x in items]",
        "open('secrets')",
    ])
    def test_rejected_expressions(self, expression):
        with pytest.raises(ConditionEvaluationError):
            evaluate_expression(expression, {"items": [1], "client": {}})

    def test_runtime_errors_are_wrapped(self):
        with pytest.raises(ConditionEvaluationError):
            evaluate_expression("amount / zero", {"amount": 1, "zero": 0})


class TestRuleConditionEvaluator:
    """Tests for rule-based conditions."""

    @pytest.mark.asyncio
    async def test_evaluate(self):
        evaluator = RuleConditionEvaluator()
        condition = ConditionSpec(expression="invoices_overdue > 0")

        assert await evaluator.evaluate(condition, {"invoices_overdue": 3}) is True
        assert await evaluator.evaluate(condition, {"invoices_overdue": 0}) is False

    @pytest.mark.asyncio
    async def test_not_logic_negates(self):
        evaluator = RuleConditionEvaluator()
        condition = ConditionSpec(expression="score > 5", logic=ConditionLogic.NOT)

        assert await evaluator.evaluate(condition, {"score": 2}) is True

    @pytest.mark.asyncio
    async def test_functions_are_available(self):
        evaluator = RuleConditionEvaluator(functions={"is_vip": lambda c: c == "acme"})
        condition = ConditionSpec(expression="is_vip(client)")

        assert await evaluator.evaluate(condition, {"client": "acme"}) is True


class TestConditionEvaluator:
    """Tests for the pluggable condition front."""

    @pytest.mark.asyncio
    async def test_rules_by_default(self):
        evaluator = ConditionEvaluator()
        condition = ConditionSpec(expression="x == 1", ai_evaluated=True)

        assert await evaluator.evaluate(condition, {"x": 1}) is True

    @pytest.mark.asyncio
    async def test_ai_evaluated_condition_uses_model(self):
        model = FixedPredictionModel(label="false", confidence=0.99)
        evaluator = ConditionEvaluator(ai=AIConditionEvaluator(model))
        condition = ConditionSpec(expression="x == 1", ai_evaluated=True)

        assert await evaluator.evaluate(condition, {"x": 1}) is False
        model_id, inputs, labels = model.calls[0]
        assert model_id == "condition_judge"
        assert inputs["expression"] == "x == 1"
        assert labels == ["true", "false"]

    @pytest.mark.asyncio
    async def test_ai_threshold(self):
        model = FixedPredictionModel(label="yes", confidence=0.4)
        evaluator = AIConditionEvaluator(model, threshold=0.5)

        assert await evaluator.evaluate(ConditionSpec(expression="x"), {}) is False

    @pytest.mark.asyncio
    async def test_unavailable_model_falls_back_to_rules(self):
        evaluator = ConditionEvaluator(ai=AIConditionEvaluator(PredictionModelRegistry()))
        condition = ConditionSpec(expression="x == 1", ai_evaluated=True)

        assert await evaluator.evaluate(condition, {"x": 1}) is True

    @pytest.mark.asyncio
    async def test_plain_conditions_skip_the_model(self):
        model = FixedPredictionModel(label="false")
        evaluator = ConditionEvaluator(ai=AIConditionEvaluator(model))

        assert await evaluator.evaluate(ConditionSpec(expression="x == 1"), {"x": 1}) is True
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_evaluate_expression(self):
        evaluator = ConditionEvaluator()
        assert await evaluator.evaluate_expression("amount > 100", {"amount": 150}) is True
