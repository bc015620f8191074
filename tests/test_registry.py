"""
Tests for the workflow registry and the execution store.
"""

import pytest

from conftest import action_step, make_workflow

from synapse_orchestrator.errors import ConfigurationError, NotFoundError
from synapse_orchestrator.execution.store import ExecutionStore
from synapse_orchestrator.registry import WorkflowRegistry
from synapse_orchestrator.types import ExecutionStatus, Workflow, WorkflowCategory, WorkflowExecution


class TestWorkflowRegistry:
    """Tests for workflow registry."""

    @pytest.mark.asyncio
    async def test_register_and_get(self):
        registry = WorkflowRegistry()
        await registry.initialize()

        stored = await registry.register(make_workflow("invoice", [action_step("notify")]))

        assert stored.id == "invoice"
        assert (await registry.get("invoice")) is stored
        assert registry.count() == 1

    @pytest.mark.asyncio
    async def test_assigns_custom_id(self):
        registry = WorkflowRegistry()
        stored = await registry.register(Workflow(name="Anonymous", steps=[action_step("a")]))

        assert stored.id.startswith("custom_")

    @pytest.mark.asyncio
    async def test_invalid_workflow_rejected(self):
        registry = WorkflowRegistry()

        with pytest.raises(ConfigurationError) as exc_info:
            await registry.register(Workflow(name="Empty"))

        assert "Workflow must have at least one step" in exc_info.value.details["errors"]
        assert registry.count() == 0

    @pytest.mark.asyncio
    async def test_require_unknown(self):
        with pytest.raises(NotFoundError):
            await WorkflowRegistry().require("ghost")

    @pytest.mark.asyncio
    async def test_replace_keeps_statistics(self):
        registry = WorkflowRegistry()
        original = await registry.register(make_workflow("wf", [action_step("a")]))
        await registry.record_outcome("wf", success=True)

        replacement = await registry.register(
            make_workflow("wf", [action_step("a"), action_step("b")], category=WorkflowCategory.HR)
        )

        assert replacement.execution_count == 1
        assert replacement.success_rate == 1.0
        assert replacement.created_at == original.created_at
        assert [w.id for w in await registry.list(category=WorkflowCategory.HR)] == ["wf"]
        assert await registry.list(category=WorkflowCategory.BUSINESS) == []

    @pytest.mark.asyncio
    async def test_active_by_priority(self):
        registry = WorkflowRegistry()
        await registry.register(make_workflow("low", [action_step("a")], priority=2))
        await registry.register(make_workflow("high", [action_step("a")], priority=9))
        await registry.register(make_workflow("mid_first", [action_step("a")], priority=5))
        await registry.register(make_workflow("mid_second", [action_step("a")], priority=5))
        await registry.register(make_workflow("off", [action_step("a")], priority=10, is_active=False))

        ordered = [w.id for w in await registry.active_by_priority()]

        assert ordered == ["high", "mid_first", "mid_second", "low"]

    @pytest.mark.asyncio
    async def test_set_active(self):
        registry = WorkflowRegistry()
        await registry.register(make_workflow("wf", [action_step("a")]))

        await registry.set_active("wf", False)

        assert await registry.list(active_only=True) == []
        with pytest.raises(NotFoundError):
            await registry.set_active("ghost", True)

    @pytest.mark.asyncio
    async def test_success_rate_is_running_mean(self):
        registry = WorkflowRegistry()
        await registry.register(make_workflow("wf", [action_step("a")]))

        for success in (True, True, False, True):
            await registry.record_outcome("wf", success)

        workflow = await registry.get("wf")
        assert workflow.execution_count == 4
        assert workflow.success_rate == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_stats(self):
        registry = WorkflowRegistry()
        await registry.register(make_workflow("a", [action_step("s")], category=WorkflowCategory.FINANCE))
        await registry.register(make_workflow("b", [action_step("s")], ai_adaptive=True, is_active=False))
        await registry.record_outcome("a", True)

        stats = registry.get_stats()

        assert stats["total"] == 2
        assert stats["active"] == 1
        assert stats["ai_adaptive"] == 1
        assert stats["categories"]["finance"] == 1
        assert stats["total_executions"] == 1
        assert stats["average_success_rate"] == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_persistence(self, tmp_path):
        registry = WorkflowRegistry(persistence_path=tmp_path)
        await registry.initialize()
        await registry.register(make_workflow("kept", [action_step("a")]))
        await registry.record_outcome("kept", False)
        await registry.shutdown()

        reloaded = WorkflowRegistry(persistence_path=tmp_path)
        await reloaded.initialize()

        workflow = await reloaded.get("kept")
        assert workflow is not None
        assert workflow.execution_count == 1
        assert workflow.steps[0].id == "a"


class TestExecutionStore:
    """Tests for the execution store."""

    def _finished(self, status=ExecutionStatus.COMPLETED) -> WorkflowExecution:
        execution = WorkflowExecution(workflow_id="wf")
        execution.finish(status)
        return execution

    def test_archive_moves_to_history(self):
        store = ExecutionStore()
        execution = WorkflowExecution(workflow_id="wf")
        store.add(execution)
        assert store.is_active(execution.id)

        execution.finish(ExecutionStatus.COMPLETED)
        store.archive(execution)

        assert not store.is_active(execution.id)
        assert store.get(execution.id) is execution
        assert store.history() == [execution]
        assert len(store) == 1

    def test_archive_rejects_live_execution(self):
        store = ExecutionStore()
        execution = WorkflowExecution()
        store.add(execution)

        with pytest.raises(ValueError):
            store.archive(execution)

    def test_history_is_bounded(self):
        store = ExecutionStore(history_limit=3)
        executions = [self._finished() for _ in range(5)]
        for execution in executions:
            store.archive(execution)

        assert store.history() == executions[-3:]
        assert store.get(executions[0].id) is None
        assert store.get(executions[4].id) is executions[4]

    def test_history_window(self):
        store = ExecutionStore()
        executions = [self._finished() for _ in range(4)]
        for execution in executions:
            store.archive(execution)

        assert store.history(2) == executions[-2:]
        assert store.history(0) == []

    def test_history_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            ExecutionStore(history_limit=0)
        with pytest.raises(ValueError):
            ExecutionStore(history_limit=-1)

        store = ExecutionStore(history_limit=1)
        first, second = self._finished(), self._finished()
        store.archive(first)
        store.archive(second)
        assert store.history() == [second]
