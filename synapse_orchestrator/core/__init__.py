"""Synapse core: configuration."""

from synapse_orchestrator.core.config import (
    SynapseConfig,
    OrchestratorConfig,
    MonitoringConfig,
    SchedulerConfig,
    get_config,
    set_config,
    reset_config,
)

__all__ = [
    "SynapseConfig",
    "OrchestratorConfig",
    "MonitoringConfig",
    "SchedulerConfig",
    "get_config",
    "set_config",
    "reset_config",
]
