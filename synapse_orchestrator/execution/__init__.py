"""Synapse execution: step runner and execution store."""

from synapse_orchestrator.execution.runner import StepRunner
from synapse_orchestrator.execution.store import ExecutionStore

__all__ = ["StepRunner", "ExecutionStore"]
