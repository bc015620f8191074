"""
Synapse Workflow Actions

Action types for workflow execution:
- Notifications, email, SMS and voice calls
- Data updates
- External API calls
- File generation
"""

from synapse_orchestrator.actions.executor import ActionExecutor, BaseActionHandler
from synapse_orchestrator.actions.handlers import (
    SimulatedActionHandler,
    NotificationActionHandler,
    EmailActionHandler,
    DataUpdateActionHandler,
    ApiCallActionHandler,
    FileGenerationActionHandler,
    SmsActionHandler,
    VoiceCallActionHandler,
)

__all__ = [
    "ActionExecutor",
    "BaseActionHandler",
    "SimulatedActionHandler",
    "NotificationActionHandler",
    "EmailActionHandler",
    "DataUpdateActionHandler",
    "ApiCallActionHandler",
    "FileGenerationActionHandler",
    "SmsActionHandler",
    "VoiceCallActionHandler",
]
