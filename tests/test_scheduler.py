"""
Tests for the cron scheduler.
"""

from datetime import datetime

import pytest

from conftest import action_step, make_engine, make_workflow

from synapse_orchestrator.errors import ConfigurationError
from synapse_orchestrator.triggers.scheduler import CronScheduler
from synapse_orchestrator.types import EventTrigger, ScheduleTrigger

EIGHT_AM = datetime(2024, 1, 1, 8, 0)


def fixed_scheduler() -> CronScheduler:
    return CronScheduler(check_interval=3600, clock=lambda: EIGHT_AM)


class TestCronScheduler:
    """Tests for driving jobs by tick."""

    @pytest.mark.asyncio
    async def test_fires_when_due(self):
        scheduler = fixed_scheduler()
        fired = []
        job = scheduler.on_tick("0 9 * * *", lambda: fired.append(1))

        assert job.next_run == datetime(2024, 1, 1, 9, 0)
        assert await scheduler.tick(datetime(2024, 1, 1, 8, 30)) == 0
        assert await scheduler.tick(datetime(2024, 1, 1, 9, 0)) == 1

        assert fired == [1]
        assert job.run_count == 1
        assert job.last_run == datetime(2024, 1, 1, 9, 0)
        assert job.next_run == datetime(2024, 1, 2, 9, 0)

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self):
        scheduler = fixed_scheduler()
        fired = []

        async def callback():
            fired.append("async")

        scheduler.on_tick("*/15 * * * *", callback)
        await scheduler.tick(datetime(2024, 1, 1, 8, 15))

        assert fired == ["async"]

    def test_invalid_expression(self):
        with pytest.raises(ConfigurationError):
            fixed_scheduler().on_tick("every tuesday", lambda: None)

    @pytest.mark.asyncio
    async def test_callback_errors_are_isolated(self):
        scheduler = fixed_scheduler()
        fired = []

        def broken():
            raise RuntimeError("downstream offline")

        failing = scheduler.on_tick("0 9 * * *", broken)
        scheduler.on_tick("0 9 * * *", lambda: fired.append(1))

        assert await scheduler.tick(datetime(2024, 1, 1, 9, 0)) == 2
        assert fired == [1]
        assert failing.consecutive_failures == 1
        assert failing.next_run == datetime(2024, 1, 2, 9, 0)

    def test_unregister(self):
        scheduler = fixed_scheduler()
        job = scheduler.on_tick("0 9 * * *", lambda: None)

        assert scheduler.unregister(job.id) is True
        assert scheduler.unregister(job.id) is False
        assert scheduler.jobs() == []

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        scheduler = fixed_scheduler()

        scheduler.start()
        assert scheduler.running

        await scheduler.stop()
        assert not scheduler.running


class TestScheduledWorkflows:
    """Tests for schedule triggers wired through the engine."""

    @pytest.mark.asyncio
    async def test_register_workflows_starts_executions(self):
        scheduler = fixed_scheduler()
        engine = make_engine(scheduler=scheduler)
        await engine.registry.register(make_workflow(
            "daily_digest",
            [action_step("notify")],
            triggers=[ScheduleTrigger(cron_expression="0 9 * * *"), EventTrigger(event_type="x")],
        ))

        jobs = await scheduler.register_workflows(engine.registry, engine)
        assert [job.workflow_id for job in jobs] == ["daily_digest"]

        await scheduler.tick(datetime(2024, 1, 1, 9, 0))

        active, history, _ = engine.list_executions()
        execution = (active + history)[0]
        assert execution.workflow_id == "daily_digest"
        assert execution.triggered_by == "scheduler"

        await engine.wait_for(execution.id, timeout=5)
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_reregistering_replaces_jobs(self):
        scheduler = fixed_scheduler()
        engine = make_engine(scheduler=scheduler)

        await engine.register_workflow(make_workflow(
            "report", [action_step("notify")], triggers=[ScheduleTrigger(cron_expression="0 9 * * *")]
        ))
        await engine.register_workflow(make_workflow(
            "report", [action_step("notify")], triggers=[ScheduleTrigger(cron_expression="30 17 * * *")]
        ))

        jobs = scheduler.jobs()
        assert len(jobs) == 1
        assert jobs[0].cron_expression == "30 17 * * *"

        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_inactive_workflow_is_not_started(self):
        scheduler = fixed_scheduler()
        engine = make_engine(scheduler=scheduler)
        await engine.register_workflow(make_workflow(
            "paused_report",
            [action_step("notify")],
            triggers=[ScheduleTrigger(cron_expression="0 9 * * *")],
            is_active=False,
        ))

        await scheduler.tick(datetime(2024, 1, 1, 9, 0))

        assert engine.get_execution_stats()["total"] == 0
        assert scheduler.jobs()[0].consecutive_failures == 1

        await engine.shutdown()
