"""
Synapse Execution Store

Working set of live executions plus a bounded history of terminal ones.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional

import structlog

from synapse_orchestrator.types import WorkflowExecution

logger = structlog.get_logger(__name__)


class ExecutionStore:
    """
    In-memory execution storage.

    Live (running or paused) executions are keyed by id. Terminal
    executions are moved to a history that evicts the oldest entry once
    ``history_limit`` is reached. An execution is in exactly one of the two.
    """

    def __init__(self, history_limit: int = 1000):
        if history_limit < 1:
            raise ValueError(f"history_limit must be at least 1, got {history_limit}")
        self.history_limit = history_limit

        self._active: Dict[str, WorkflowExecution] = {}
        self._history: Deque[WorkflowExecution] = deque(maxlen=history_limit)
        self._history_index: Dict[str, WorkflowExecution] = {}

    def add(self, execution: WorkflowExecution) -> None:
        """Add a live execution to the working set."""
        self._active[execution.id] = execution

    def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Look up an execution in the working set, then in history."""
        execution = self._active.get(execution_id)
        if execution is None:
            execution = self._history_index.get(execution_id)
        return execution

    def is_active(self, execution_id: str) -> bool:
        return execution_id in self._active

    def archive(self, execution: WorkflowExecution) -> None:
        """Move a terminal execution from the working set to history."""
        if not execution.is_terminal():
            raise ValueError(f"Cannot archive non-terminal execution: {execution.id}")

        if self._active.pop(execution.id, None) is None and execution.id in self._history_index:
            return

        if len(self._history) == self._history.maxlen:
            evicted = self._history[0]
            self._history_index.pop(evicted.id, None)
            logger.debug("execution_evicted", execution_id=evicted.id)

        self._history.append(execution)
        self._history_index[execution.id] = execution

    def active(self) -> List[WorkflowExecution]:
        """Live executions."""
        return list(self._active.values())

    def history(self, limit: Optional[int] = None) -> List[WorkflowExecution]:
        """Terminal executions, most recent last."""
        items = list(self._history)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def all(self) -> List[WorkflowExecution]:
        """Every execution the store currently knows."""
        return self.active() + list(self._history)

    def __len__(self) -> int:
        return len(self._active) + len(self._history)
