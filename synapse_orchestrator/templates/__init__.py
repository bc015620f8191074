"""Built-in workflow definitions."""

from synapse_orchestrator.templates.builtin import get_builtin_workflows

__all__ = ["get_builtin_workflows"]
