"""
Synapse Workflow Registry

Storage and retrieval of workflow definitions, plus the per-workflow
execution statistics the engine records.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from synapse_orchestrator.errors import ConfigurationError, NotFoundError
from synapse_orchestrator.types import Workflow, WorkflowCategory, generate_id

logger = structlog.get_logger(__name__)


class WorkflowRegistry:
    """
    Registry for workflow definitions.

    Features:
    - In-memory storage with optional persistence
    - Query by category, activity and priority
    - Single-writer statistics updates
    """

    def __init__(
        self,
        persistence_path: Optional[Path] = None,
        auto_persist: bool = True,
    ):
        self.persistence_path = persistence_path
        self.auto_persist = auto_persist

        # Storage
        self._workflows: Dict[str, Workflow] = {}

        # Indices
        self._by_category: Dict[WorkflowCategory, List[str]] = {c: [] for c in WorkflowCategory}

        self._initialized = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize the registry."""
        if self._initialized:
            return

        # Load persisted workflows
        if self.persistence_path and self.persistence_path.exists():
            await self._load_from_disk()

        self._initialized = True
        logger.info("Workflow registry initialized", workflow_count=len(self._workflows))

    async def shutdown(self) -> None:
        """Shutdown the registry."""
        if self.persistence_path and self.auto_persist:
            await self._save_to_disk()

        self._initialized = False

    # === Workflow Operations ===

    async def register(self, workflow: Workflow) -> Workflow:
        """
        Register or update a workflow.

        Re-registering an existing id replaces the definition but keeps
        the statistics gathered so far.
        """
        errors = workflow.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid workflow: {'; '.join(errors)}",
                details={"errors": errors},
            )

        async with self._lock:
            if not workflow.id:
                workflow.id = generate_id("custom")

            old_workflow = self._workflows.get(workflow.id)
            if old_workflow:
                workflow.created_at = old_workflow.created_at
                workflow.execution_count = old_workflow.execution_count
                workflow.success_rate = old_workflow.success_rate
                workflow.last_executed = old_workflow.last_executed
                self._by_category[old_workflow.category].remove(workflow.id)

            self._workflows[workflow.id] = workflow
            self._by_category[workflow.category].append(workflow.id)

            if self.persistence_path and self.auto_persist:
                await self._save_to_disk()

        logger.debug(
            "workflow_stored",
            workflow_id=workflow.id,
            name=workflow.name,
            is_new=old_workflow is None,
        )

        return workflow

    async def get(self, workflow_id: str) -> Optional[Workflow]:
        """Get a workflow by ID."""
        return self._workflows.get(workflow_id)

    async def require(self, workflow_id: str) -> Workflow:
        """Get a workflow by ID or raise ``NotFoundError``."""
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError(
                f"Workflow not found: {workflow_id}",
                details={"workflow_id": workflow_id},
            )
        return workflow

    async def delete(self, workflow_id: str) -> bool:
        """Delete a workflow."""
        async with self._lock:
            workflow = self._workflows.pop(workflow_id, None)
            if not workflow:
                return False

            self._by_category[workflow.category].remove(workflow_id)

            if self.persistence_path and self.auto_persist:
                await self._save_to_disk()

        logger.info("workflow_deleted", workflow_id=workflow_id)
        return True

    async def list(
        self,
        active_only: bool = False,
        category: Optional[WorkflowCategory] = None,
    ) -> List[Workflow]:
        """List workflows with filters."""
        if category:
            workflows = [self._workflows[i] for i in self._by_category[category]]
        else:
            workflows = list(self._workflows.values())

        if active_only:
            workflows = [w for w in workflows if w.is_active]

        return workflows

    async def active_by_priority(self) -> List[Workflow]:
        """Active workflows, highest priority first."""
        workflows = [w for w in self._workflows.values() if w.is_active]
        # sort is stable: equal priorities keep registration order
        workflows.sort(key=lambda w: w.priority, reverse=True)
        return workflows

    async def set_active(self, workflow_id: str, active: bool) -> Workflow:
        """Activate or deactivate a workflow."""
        async with self._lock:
            workflow = await self.require(workflow_id)
            workflow.is_active = active

        logger.info("workflow_activation_changed", workflow_id=workflow_id, active=active)
        return workflow

    def count(self) -> int:
        """Count workflows."""
        return len(self._workflows)

    # === Statistics ===

    async def mark_started(self, workflow_id: str, when: Optional[datetime] = None) -> None:
        """Stamp ``last_executed`` when an execution starts."""
        async with self._lock:
            workflow = self._workflows.get(workflow_id)
            if workflow:
                workflow.last_executed = when or datetime.now()

    async def record_outcome(self, workflow_id: str, success: bool) -> Optional[Workflow]:
        """
        Fold one finished execution into the workflow's statistics.

        Called exactly once per execution that ends completed or failed.
        """
        async with self._lock:
            workflow = self._workflows.get(workflow_id)
            if workflow is None:
                logger.warning("statistics_for_unknown_workflow", workflow_id=workflow_id)
                return None

            workflow.execution_count += 1
            n = workflow.execution_count
            rate = (workflow.success_rate * (n - 1) + (1.0 if success else 0.0)) / n
            workflow.success_rate = min(1.0, max(0.0, rate))

            if self.persistence_path and self.auto_persist:
                await self._save_to_disk()

        logger.debug(
            "workflow_statistics_updated",
            workflow_id=workflow_id,
            execution_count=workflow.execution_count,
            success_rate=workflow.success_rate,
        )
        return workflow

    def get_stats(self) -> Dict[str, Any]:
        """Get registry statistics."""
        workflows = list(self._workflows.values())
        total = len(workflows)

        return {
            "total": total,
            "active": len([w for w in workflows if w.is_active]),
            "categories": {c.value: len(ids) for c, ids in self._by_category.items()},
            "ai_adaptive": len([w for w in workflows if w.ai_adaptive]),
            "total_executions": sum(w.execution_count for w in workflows),
            "average_success_rate": (
                sum(w.success_rate for w in workflows) / total if total else 0.0
            ),
        }

    # === Persistence ===

    async def _load_from_disk(self) -> None:
        """Load workflows from disk."""
        try:
            workflows_file = self.persistence_path / "workflows.json"
            if workflows_file.exists():
                with open(workflows_file, "r") as f:
                    data = json.load(f)

                for workflow_data in data.get("workflows", []):
                    workflow = Workflow.from_dict(workflow_data)
                    self._workflows[workflow.id] = workflow
                    self._by_category[workflow.category].append(workflow.id)

                logger.info("workflows_loaded", count=len(self._workflows))

        except (OSError, ValueError, KeyError) as e:
            logger.error("load_error", error=str(e))

    async def _save_to_disk(self) -> None:
        """Save workflows to disk."""
        if not self.persistence_path:
            return

        try:
            self.persistence_path.mkdir(parents=True, exist_ok=True)

            workflows_file = self.persistence_path / "workflows.json"
            data = {
                "workflows": [w.to_dict() for w in self._workflows.values()],
                "saved_at": datetime.now().isoformat(),
            }

            with open(workflows_file, "w") as f:
                json.dump(data, f, indent=2, default=str)

        except OSError as e:
            logger.error("save_error", error=str(e))
