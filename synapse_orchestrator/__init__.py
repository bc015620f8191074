"""
Synapse Workflow Orchestrator

Trigger-driven execution engine for business automations with:
- Multi-step workflows with success/failure branching
- Parallel fan-out, waits and retries
- AI decisions with guaranteed fallbacks
- Pause, resume and cancel of running executions
- Real-time execution monitoring
"""

__version__ = "1.0.0"

from synapse_orchestrator.core.config import SynapseConfig, get_config
from synapse_orchestrator.engine import WorkflowEngine
from synapse_orchestrator.registry import WorkflowRegistry
from synapse_orchestrator.types import (
    Workflow,
    WorkflowEvent,
    WorkflowExecution,
    ExecutionStatus,
)

__all__ = [
    "SynapseConfig",
    "get_config",
    "WorkflowEngine",
    "WorkflowRegistry",
    "Workflow",
    "WorkflowEvent",
    "WorkflowExecution",
    "ExecutionStatus",
    "__version__",
]
