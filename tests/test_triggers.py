"""
Tests for event routing.
"""

import pytest

from conftest import action_step, make_engine, make_workflow

from synapse_orchestrator.decisions.models import PredictionModelRegistry
from synapse_orchestrator.types import (
    AIPredictionTrigger,
    ConditionTrigger,
    EventTrigger,
    ManualTrigger,
    ScheduleTrigger,
    WorkflowEvent,
)


async def _register(engine, workflow_id, triggers, **kwargs):
    return await engine.register_workflow(
        make_workflow(workflow_id, [action_step("notify")], triggers=triggers, **kwargs)
    )


class TestTriggerRouter:
    """Tests for matching events to workflows."""

    @pytest.mark.asyncio
    async def test_event_trigger(self, engine):
        await _register(engine, "onboarding", [EventTrigger(event_type="employee_hired")])

        started = await engine.route_event(WorkflowEvent(type="employee_hired", data={"name": "Ada"}))

        assert len(started) == 1
        execution = started[0]
        assert execution.workflow_id == "onboarding"
        assert execution.triggered_by == "smart_trigger_employee_hired"
        assert execution.variables == {"name": "Ada"}

        await engine.wait_for(execution.id, timeout=5)

    @pytest.mark.asyncio
    async def test_no_match(self, engine):
        await _register(engine, "onboarding", [EventTrigger(event_type="employee_hired")])

        assert await engine.route_event(WorkflowEvent(type="invoice_paid")) == []

    @pytest.mark.asyncio
    async def test_priority_order(self, engine):
        trigger = [EventTrigger(event_type="deal_closed")]
        await _register(engine, "low", trigger, priority=1)
        await _register(engine, "high", trigger, priority=9)
        await _register(engine, "mid", trigger, priority=5)

        started = await engine.route_event(WorkflowEvent(type="deal_closed"))

        assert [e.workflow_id for e in started] == ["high", "mid", "low"]

    @pytest.mark.asyncio
    async def test_one_execution_per_workflow(self, engine):
        await _register(engine, "both", [
            EventTrigger(event_type="deal_closed"),
            ConditionTrigger(expression="amount > 10"),
        ])

        started = await engine.route_event(WorkflowEvent(type="deal_closed", data={"amount": 50}))

        assert len(started) == 1

    @pytest.mark.asyncio
    async def test_broken_trigger_does_not_stop_others(self, engine):
        await _register(engine, "broken", [ConditionTrigger(expression="amount >")], priority=9)
        await _register(engine, "healthy", [ConditionTrigger(expression="amount > 10")], priority=1)

        started = await engine.route_event(WorkflowEvent(type="deal_closed", data={"amount": 50}))

        assert [e.workflow_id for e in started] == ["healthy"]
        assert engine.triggers.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_condition_trigger_uses_event_data(self, engine):
        await _register(engine, "big_deals", [ConditionTrigger(expression="amount > 1000")])

        assert await engine.route_event(WorkflowEvent(type="deal", data={"amount": 10})) == []
        assert len(await engine.route_event(WorkflowEvent(type="deal", data={"amount": 5000}))) == 1

    @pytest.mark.asyncio
    async def test_schedule_and_manual_never_match(self, engine):
        await _register(engine, "timed", [ScheduleTrigger(cron_expression="0 9 * * *"), ManualTrigger()])

        assert await engine.route_event(WorkflowEvent(type="schedule")) == []
        assert await engine.route_event(WorkflowEvent(type="manual")) == []

    @pytest.mark.asyncio
    async def test_inactive_workflows_are_skipped(self, engine):
        await _register(engine, "off", [EventTrigger(event_type="ping")], is_active=False)

        assert await engine.route_event(WorkflowEvent(type="ping")) == []

    @pytest.mark.asyncio
    async def test_prediction_threshold(self):
        models = PredictionModelRegistry()
        models.register("churn", lambda inputs, labels: ("at_risk", inputs["score"]))
        engine = make_engine(prediction_model=models)
        await _register(engine, "retention", [AIPredictionTrigger(model="churn", threshold=0.7)])

        assert await engine.route_event(WorkflowEvent(type="review", data={"score": 0.4})) == []
        assert len(await engine.route_event(WorkflowEvent(type="review", data={"score": 0.7}))) == 1

    @pytest.mark.asyncio
    async def test_unavailable_prediction_does_not_match(self, engine):
        await _register(engine, "retention", [AIPredictionTrigger(model="missing", threshold=0.1)])

        assert await engine.route_event(WorkflowEvent(type="review")) == []
        assert engine.triggers.get_stats()["errors"] == 0
