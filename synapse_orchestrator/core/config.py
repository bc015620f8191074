"""
Synapse Configuration Management

Centralized configuration for the orchestrator with:
- Environment-based configuration
- Type-safe settings with Pydantic
- JSON file load/save
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class LogLevel(str, Enum):
    """Process logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class OrchestratorConfig(BaseModel):
    """Configuration for the execution engine."""
    max_concurrent_executions: int = 100
    history_limit: int = 1000  # terminal executions kept in memory
    api_history_limit: int = 50  # history window returned by the API
    default_action_timeout_ms: float = 30000.0
    default_retry_delay_ms: float = 1000.0
    load_builtin_workflows: bool = True
    ai_conditions: bool = False  # route ai_evaluated conditions to the model
    persistence_path: Optional[Path] = None

    # Multiplier for the simulated handler latencies (0 disables sleeping)
    action_latency_scale: float = 1.0

    @field_validator("history_limit", "max_concurrent_executions")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


class MonitoringConfig(BaseModel):
    """Configuration for logging and live monitoring."""
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "text"] = "json"
    snapshot_interval_ms: int = 3000
    subscriber_queue_size: int = 256


class SchedulerConfig(BaseModel):
    """Configuration for cron-driven workflows."""
    enabled: bool = True
    check_interval: float = 60.0  # seconds


class SynapseConfig(BaseSettings):
    """
    Main Synapse Configuration

    Loads configuration from environment variables and/or config files.
    Environment variables are prefixed with SYNAPSE_
    (e.g., SYNAPSE_ORCHESTRATOR__HISTORY_LIMIT=500)
    """

    environment: Literal["development", "staging", "production"] = "development"

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Subsystem configurations
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    model_config = {
        "env_prefix": "SYNAPSE_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @classmethod
    def from_file(cls, config_path: Path) -> "SynapseConfig":
        """Load configuration from a JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = json.load(f)

        return cls(**config_data)

    def to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)


# Global configuration instance (lazy loaded)
_config: Optional[SynapseConfig] = None


def get_config() -> SynapseConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = SynapseConfig()
    return _config


def set_config(config: SynapseConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration to default."""
    global _config
    _config = None
