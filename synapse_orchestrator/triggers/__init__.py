"""
Synapse Workflow Triggers

- Event routing against event, condition and prediction triggers
- Cron scheduling of schedule triggers
"""

from synapse_orchestrator.triggers.router import TriggerRouter
from synapse_orchestrator.triggers.scheduler import CronJob, CronScheduler

__all__ = ["TriggerRouter", "CronJob", "CronScheduler"]
