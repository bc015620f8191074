"""Synapse execution monitoring."""

from synapse_orchestrator.monitoring.monitor import ExecutionMonitor, Subscription

__all__ = ["ExecutionMonitor", "Subscription"]
