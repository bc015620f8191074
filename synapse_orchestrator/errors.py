"""
Synapse Orchestrator Errors

Error taxonomy shared by the engine, the step runner and the API layer.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Set


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""

    code = "orchestrator_error"

    # Extra names this error answers to when matched against retry conditions
    retry_aliases: tuple = ()

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(OrchestratorError):
    """Unknown or inactive workflow, or unknown execution."""

    code = "not_found"


class ConfigurationError(OrchestratorError):
    """Malformed workflow definition."""

    code = "configuration_error"


class ConditionEvaluationError(OrchestratorError):
    """A condition expression could not be evaluated."""

    code = "condition_error"


class ActionExecutionError(OrchestratorError):
    """
    Raised by the action executor.

    ``error_type`` keeps the class name of the underlying failure so that
    retry policies can match on it (e.g. ``"ConnectionError"``).
    """

    code = "action_error"

    def __init__(
        self,
        message: str,
        error_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.error_type = error_type or type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["error_type"] = self.error_type
        return result


class ActionTimeoutError(ActionExecutionError):
    """An action exceeded its timeout."""

    code = "action_timeout"
    retry_aliases = ("TimeoutError",)


class PredictionUnavailableError(OrchestratorError):
    """The prediction capability could not produce a decision."""

    code = "prediction_unavailable"


def error_names(error: BaseException) -> Set[str]:
    """
    Names an error can be matched by in ``RetryPolicy.retry_conditions``.

    Includes every class name in the error's MRO, declared aliases and the
    original ``error_type`` of wrapped action failures.
    """
    names = {cls.__name__ for cls in type(error).__mro__}
    names.update(getattr(error, "retry_aliases", ()))
    error_type = getattr(error, "error_type", None)
    if error_type:
        names.add(error_type)
    return names
