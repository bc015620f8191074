"""
Shared fixtures and fakes for the orchestrator tests.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from synapse_orchestrator.actions.executor import ActionExecutor, BaseActionHandler
from synapse_orchestrator.core.config import reset_config
from synapse_orchestrator.decisions.models import PredictionModel, PredictionModelRegistry
from synapse_orchestrator.engine import WorkflowEngine
from synapse_orchestrator.errors import PredictionUnavailableError
from synapse_orchestrator.types import (
    ActionSpec,
    ActionStep,
    ActionType,
    Workflow,
    WorkflowStep,
)


class ScriptedHandler(BaseActionHandler):
    """Action handler that fails a set number of times, then succeeds."""

    def __init__(
        self,
        failures: int = 0,
        error: type = ConnectionError,
        latency_ms: float = 0.0,
        result: Optional[Dict[str, Any]] = None,
    ):
        self.failures = failures
        self.error = error
        self.latency_ms = latency_ms
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, action: ActionSpec, variables: Dict[str, Any]) -> Any:
        self.calls.append({"action_id": action.id, "variables": dict(variables)})
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)
        if len(self.calls) <= self.failures:
            raise self.error(f"attempt {len(self.calls)} failed")
        return dict(self.result or {"ok": True, "attempt": len(self.calls)})


class FixedPredictionModel(PredictionModel):
    """Prediction model returning a fixed answer, or failing on demand."""

    def __init__(self, label: str = "true", confidence: float = 0.9, unavailable: bool = False):
        self.label = label
        self.confidence = confidence
        self.unavailable = unavailable
        self.calls: List[Tuple[str, Dict[str, Any], Optional[Sequence[str]]]] = []

    async def predict(self, model_id, inputs, labels=None):
        self.calls.append((model_id, inputs, labels))
        if self.unavailable:
            raise PredictionUnavailableError(f"{model_id} is offline")
        return self.label, self.confidence


def make_executor(**handlers: BaseActionHandler) -> ActionExecutor:
    """Executor with no simulated latency and optional handler overrides by type name."""
    executor = ActionExecutor(latency_scale=0, default_retry_delay_ms=1)
    for type_name, handler in handlers.items():
        executor.register_handler(ActionType(type_name), handler)
    return executor


def make_engine(
    executor: Optional[ActionExecutor] = None,
    prediction_model: Optional[PredictionModel] = None,
    **kwargs,
) -> WorkflowEngine:
    return WorkflowEngine(
        action_executor=executor or make_executor(),
        prediction_model=prediction_model or PredictionModelRegistry(),
        **kwargs,
    )


def action_step(
    step_id: str,
    action_type: ActionType = ActionType.NOTIFICATION,
    **kwargs,
) -> ActionStep:
    return ActionStep(
        id=step_id,
        name=step_id.replace("_", " ").title(),
        action=ActionSpec(id=f"{step_id}_action", type=action_type, target="ops_team"),
        **kwargs,
    )


def make_workflow(workflow_id: str, steps: List[WorkflowStep], **kwargs) -> Workflow:
    return Workflow(id=workflow_id, name=workflow_id.replace("_", " ").title(), steps=steps, **kwargs)


@pytest.fixture(autouse=True)
def _reset_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def engine():
    return make_engine()
