"""
Tests for prediction models and the decision maker.
"""

import pytest

from conftest import FixedPredictionModel, make_executor

from synapse_orchestrator.decisions.maker import FALLBACK_LABEL, DecisionMaker
from synapse_orchestrator.decisions.models import PredictionModelRegistry, SimulatedPredictionModel
from synapse_orchestrator.errors import ConfigurationError, PredictionUnavailableError
from synapse_orchestrator.types import ActionSpec, ActionType, DecisionSpec, WorkflowExecution


def _decision(confidence: float = 0.85, fallback: bool = True) -> DecisionSpec:
    return DecisionSpec(
        model="invoice_categorizer",
        input_data=["invoice_amount", "days_overdue"],
        output_actions={
            "gentle_reminder": ActionSpec(id="send_reminder", type=ActionType.EMAIL, target="client_email"),
            "legal_action": ActionSpec(id="escalate_legal", type=ActionType.NOTIFICATION, target="legal_team"),
        },
        confidence=confidence,
        fallback_action=(
            ActionSpec(id="default_reminder", type=ActionType.EMAIL, target="client_email")
            if fallback else None
        ),
    )


class TestPredictionModelRegistry:
    """Tests for model routing."""

    @pytest.mark.asyncio
    async def test_sync_and_async_callables(self):
        registry = PredictionModelRegistry()

        async def churn(inputs, labels):
            return "high", 0.7

        registry.register("tier", lambda inputs, labels: (labels[0], 0.9))
        registry.register("churn", churn)

        assert await registry.predict("tier", {}, ["gold", "silver"]) == ("gold", 0.9)
        assert await registry.predict("churn", {}) == ("high", 0.7)

    @pytest.mark.asyncio
    async def test_unknown_model(self):
        with pytest.raises(PredictionUnavailableError):
            await PredictionModelRegistry().predict("nope", {})

    @pytest.mark.asyncio
    async def test_unknown_model_uses_default(self):
        registry = PredictionModelRegistry(default=FixedPredictionModel("maybe", 0.6))
        assert await registry.predict("nope", {}) == ("maybe", 0.6)

    @pytest.mark.asyncio
    async def test_model_failures_become_unavailable(self):
        registry = PredictionModelRegistry()

        def broken(inputs, labels):
            raise RuntimeError("model server down")

        registry.register("broken", broken)

        with pytest.raises(PredictionUnavailableError):
            await registry.predict("broken", {})

    @pytest.mark.asyncio
    async def test_simulated_model_picks_offered_label(self):
        model = SimulatedPredictionModel(latency_ms=0, seed=7)
        label, confidence = await model.predict("any", {}, ["a", "b"])

        assert label in ("a", "b")
        assert 0.75 <= confidence <= 0.95


class TestDecisionMaker:
    """Tests for decision resolution."""

    @pytest.mark.asyncio
    async def test_confident_decision_runs_selected_action(self):
        model = FixedPredictionModel("legal_action", 0.92)
        maker = DecisionMaker(model, make_executor())
        execution = WorkflowExecution(variables={"invoice_amount": 900, "days_overdue": 75, "other": 1})

        outcome = await maker.decide(_decision(), execution)

        assert outcome.label == "legal_action"
        assert outcome.action.id == "escalate_legal"
        assert outcome.action_result["target"] == "legal_team"
        model_id, inputs, labels = model.calls[0]
        assert model_id == "invoice_categorizer"
        assert inputs == {"invoice_amount": 900, "days_overdue": 75}
        assert labels == ["gentle_reminder", "legal_action"]

    @pytest.mark.asyncio
    async def test_low_confidence_runs_fallback(self):
        maker = DecisionMaker(FixedPredictionModel("legal_action", 0.5), make_executor())

        outcome = await maker.decide(_decision(), WorkflowExecution())

        assert outcome.label == FALLBACK_LABEL
        assert outcome.action.id == "default_reminder"
        assert outcome.confidence == 0.5

    @pytest.mark.asyncio
    async def test_unavailable_model_runs_fallback(self):
        maker = DecisionMaker(FixedPredictionModel(unavailable=True), make_executor())

        outcome = await maker.decide(_decision(), WorkflowExecution())

        assert outcome.label == FALLBACK_LABEL
        assert outcome.confidence == 0.0
        assert outcome.to_dict()["action"]["id"] == "default_reminder"

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self):
        maker = DecisionMaker(FixedPredictionModel("gentle_reminder", 7.0), make_executor())

        outcome = await maker.decide(_decision(confidence=1.0), WorkflowExecution())

        assert outcome.label == "gentle_reminder"
        assert outcome.confidence == 1.0

    @pytest.mark.asyncio
    async def test_unknown_label(self):
        maker = DecisionMaker(FixedPredictionModel("shrug", 0.99), make_executor())

        with pytest.raises(ConfigurationError):
            await maker.decide(_decision(), WorkflowExecution())

    @pytest.mark.asyncio
    async def test_missing_fallback(self):
        maker = DecisionMaker(FixedPredictionModel("legal_action", 0.1), make_executor())

        with pytest.raises(ConfigurationError):
            await maker.decide(_decision(fallback=False), WorkflowExecution())
