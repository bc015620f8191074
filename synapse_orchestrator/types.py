"""
Synapse Orchestrator Types

Core dataclasses for workflow definitions and executions.

Triggers and steps are closed class hierarchies: every trigger kind and
step type is its own dataclass, and ``from_dict`` dispatches on the
``type`` discriminator.
"""

from __future__ import annotations

import random
import string
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from synapse_orchestrator.errors import error_names

# Successor id that ends an execution as completed
END_WORKFLOW = "end_workflow"


# === Enums ===


class WorkflowCategory(str, Enum):
    """Business domain of a workflow."""
    BUSINESS = "business"
    HR = "hr"
    FINANCE = "finance"
    OPERATIONS = "operations"
    SALES = "sales"


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
})


class StepStatus(str, Enum):
    """Status of a single step attempt."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class LogLevel(str, Enum):
    """Execution log levels."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    DEBUG = "debug"


class ActionType(str, Enum):
    """Concrete side effects an action can perform."""
    NOTIFICATION = "notification"
    EMAIL = "email"
    DATA_UPDATE = "data_update"
    API_CALL = "api_call"
    FILE_GENERATION = "file_generation"
    SMS = "sms"
    VOICE_CALL = "voice_call"


class ConditionLogic(str, Enum):
    """Declared composition of a condition."""
    AND = "and"
    OR = "or"
    NOT = "not"


class MonitorEventType(str, Enum):
    """Execution lifecycle events streamed to observers."""
    STARTED = "started"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    PAUSED = "paused"
    RESUMED = "resumed"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def generate_id(prefix: str) -> str:
    """Generate an id like ``exec_1700000000000_k3j9x0a2b``."""
    millis = int(datetime.now().timestamp() * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{millis}_{suffix}"


# === Specs ===


@dataclass
class RetryPolicy:
    """Step-local retry configuration."""
    max_retries: int = 0
    retry_delay_ms: float = 1000.0
    backoff_multiplier: float = 2.0
    retry_conditions: List[str] = field(default_factory=list)

    def delay_for(self, retry_count: int) -> float:
        """Delay in ms before the retry following ``retry_count`` retries."""
        return self.retry_delay_ms * (self.backoff_multiplier ** retry_count)

    def is_retryable(self, error: BaseException) -> bool:
        """Only errors named in ``retry_conditions`` are retried."""
        if not self.retry_conditions:
            return False
        return bool(error_names(error) & set(self.retry_conditions))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_retries": self.max_retries,
            "retry_delay_ms": self.retry_delay_ms,
            "backoff_multiplier": self.backoff_multiplier,
            "retry_conditions": list(self.retry_conditions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        """Create from dictionary."""
        return cls(
            max_retries=data.get("max_retries", data.get("maxRetries", 0)),
            retry_delay_ms=data.get("retry_delay_ms", data.get("retryDelay", 1000.0)),
            backoff_multiplier=data.get("backoff_multiplier", data.get("backoffMultiplier", 2.0)),
            retry_conditions=list(data.get("retry_conditions", data.get("retryConditions", []))),
        )


@dataclass
class ActionSpec:
    """A single concrete action."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    type: ActionType = ActionType.NOTIFICATION
    target: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    timeout_ms: Optional[float] = None
    retries: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type.value,
            "target": self.target,
            "parameters": self.parameters,
            "timeout_ms": self.timeout_ms,
            "retries": self.retries,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionSpec":
        """Create from dictionary."""
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            type=ActionType(data.get("type", "notification")),
            target=data.get("target", ""),
            parameters=dict(data.get("parameters") or {}),
            timeout_ms=data.get("timeout_ms", data.get("timeout")),
            retries=data.get("retries"),
        )


@dataclass
class ConditionSpec:
    """A boolean expression evaluated against execution variables."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    expression: str = ""
    variables: Dict[str, Any] = field(default_factory=dict)
    ai_evaluated: bool = False
    logic: ConditionLogic = ConditionLogic.AND

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "expression": self.expression,
            "variables": self.variables,
            "ai_evaluated": self.ai_evaluated,
            "logic": self.logic.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConditionSpec":
        """Create from dictionary."""
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            expression=data.get("expression", ""),
            variables=dict(data.get("variables") or {}),
            ai_evaluated=data.get("ai_evaluated", data.get("aiEvaluated", False)),
            logic=ConditionLogic(data.get("logic", "and")),
        )


@dataclass
class DecisionSpec:
    """An AI decision selecting one of several actions."""
    model: str = ""
    input_data: List[str] = field(default_factory=list)
    output_actions: Dict[str, ActionSpec] = field(default_factory=dict)
    confidence: float = 0.8
    fallback_action: Optional[ActionSpec] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "model": self.model,
            "input_data": list(self.input_data),
            "output_actions": {k: v.to_dict() for k, v in self.output_actions.items()},
            "confidence": self.confidence,
            "fallback_action": self.fallback_action.to_dict() if self.fallback_action else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionSpec":
        """Create from dictionary."""
        outputs = data.get("output_actions", data.get("outputActions")) or {}
        fallback = data.get("fallback_action", data.get("fallbackAction"))
        return cls(
            model=data.get("model", ""),
            input_data=list(data.get("input_data", data.get("inputData", []))),
            output_actions={k: ActionSpec.from_dict(v) for k, v in outputs.items()},
            confidence=data.get("confidence", 0.8),
            fallback_action=ActionSpec.from_dict(fallback) if fallback else None,
        )


# === Triggers ===


@dataclass
class Trigger:
    """Base trigger. Use one of the concrete kinds below."""
    kind: ClassVar[str] = ""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def _fields(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"id": self.id, "type": self.kind, **self._fields()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trigger":
        """Create the concrete trigger named by ``data["type"]``."""
        kind = data.get("type", "manual")
        trigger_cls = TRIGGER_KINDS.get(kind)
        if trigger_cls is None:
            raise ValueError(f"Unknown trigger type: {kind}")
        return trigger_cls._from_fields(data)

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "Trigger":
        return cls(id=data.get("id", str(uuid.uuid4())))


@dataclass
class EventTrigger(Trigger):
    """Fires when a routed event has the same type."""
    kind: ClassVar[str] = "event"

    event_type: str = ""

    def _fields(self) -> Dict[str, Any]:
        return {"event_type": self.event_type}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "EventTrigger":
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            event_type=data.get("event_type", data.get("eventType", "")),
        )


@dataclass
class ScheduleTrigger(Trigger):
    """Fires on a cron schedule (driven by the scheduler, not the router)."""
    kind: ClassVar[str] = "schedule"

    cron_expression: str = ""

    def _fields(self) -> Dict[str, Any]:
        return {"cron_expression": self.cron_expression}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "ScheduleTrigger":
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            cron_expression=data.get("cron_expression", data.get("schedule", "")),
        )


@dataclass
class ConditionTrigger(Trigger):
    """Fires when an expression holds for the event data."""
    kind: ClassVar[str] = "condition"

    expression: str = ""

    def _fields(self) -> Dict[str, Any]:
        return {"expression": self.expression}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "ConditionTrigger":
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            expression=data.get("expression", data.get("condition", "")),
        )


@dataclass
class ManualTrigger(Trigger):
    """Started only through an explicit API call."""
    kind: ClassVar[str] = "manual"


@dataclass
class AIPredictionTrigger(Trigger):
    """Fires when a prediction model scores the event above a threshold."""
    kind: ClassVar[str] = "ai_prediction"

    model: str = ""
    threshold: float = 0.8

    def _fields(self) -> Dict[str, Any]:
        return {"model": self.model, "threshold": self.threshold}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "AIPredictionTrigger":
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            model=data.get("model", data.get("aiModel", "")),
            threshold=data.get("threshold", 0.8),
        )


TRIGGER_KINDS: Dict[str, Type[Trigger]] = {
    cls.kind: cls
    for cls in (EventTrigger, ScheduleTrigger, ConditionTrigger, ManualTrigger, AIPredictionTrigger)
}


# === Steps ===


@dataclass
class WorkflowStep:
    """Base step. Use one of the concrete step types below."""
    type: ClassVar[str] = ""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    description: str = ""

    # Flow control
    next_step_id: Optional[str] = None
    on_success: Optional[str] = None
    on_failure: Optional[str] = None

    # Error handling
    retry_policy: Optional[RetryPolicy] = None

    def successors(self) -> List[str]:
        """All step ids this step may hand control to."""
        return [s for s in (self.next_step_id, self.on_success, self.on_failure) if s]

    def _fields(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "next_step_id": self.next_step_id,
            "on_success": self.on_success,
            "on_failure": self.on_failure,
        }
        if self.retry_policy:
            result["retry_policy"] = self.retry_policy.to_dict()
        result.update(self._fields())
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        """Create the concrete step named by ``data["type"]``."""
        step_type = data.get("type", "action")
        step_cls = STEP_TYPES.get(step_type)
        if step_cls is None:
            raise ValueError(f"Unknown step type: {step_type}")

        retry = data.get("retry_policy", data.get("retryPolicy"))
        step = step_cls._from_fields(data)
        step.id = data.get("id", step.id)
        step.name = data.get("name", "")
        step.description = data.get("description", "")
        step.next_step_id = data.get("next_step_id", data.get("nextStepId"))
        step.on_success = data.get("on_success", data.get("onSuccess"))
        step.on_failure = data.get("on_failure", data.get("onFailure"))
        step.retry_policy = RetryPolicy.from_dict(retry) if retry else None
        return step

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "WorkflowStep":
        return cls()


@dataclass
class ActionStep(WorkflowStep):
    """Runs one action through the action executor."""
    type: ClassVar[str] = "action"

    action: ActionSpec = field(default_factory=ActionSpec)

    def _fields(self) -> Dict[str, Any]:
        return {"action": self.action.to_dict()}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "ActionStep":
        return cls(action=ActionSpec.from_dict(data.get("action") or {}))


@dataclass
class ConditionStep(WorkflowStep):
    """Evaluates a condition; false routes to ``on_failure``."""
    type: ClassVar[str] = "condition"

    condition: ConditionSpec = field(default_factory=ConditionSpec)

    def _fields(self) -> Dict[str, Any]:
        return {"condition": self.condition.to_dict()}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "ConditionStep":
        return cls(condition=ConditionSpec.from_dict(data.get("condition") or {}))


@dataclass
class ParallelStep(WorkflowStep):
    """Runs child steps concurrently and waits for all of them."""
    type: ClassVar[str] = "parallel"

    steps: List[WorkflowStep] = field(default_factory=list)

    def _fields(self) -> Dict[str, Any]:
        return {"steps": [s.to_dict() for s in self.steps]}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "ParallelStep":
        children = data.get("steps", data.get("parallelSteps")) or []
        return cls(steps=[WorkflowStep.from_dict(c) for c in children])


@dataclass
class WaitStep(WorkflowStep):
    """Suspends progress for a fixed duration."""
    type: ClassVar[str] = "wait"

    wait_duration_ms: float = 0.0

    def _fields(self) -> Dict[str, Any]:
        return {"wait_duration_ms": self.wait_duration_ms}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "WaitStep":
        return cls(wait_duration_ms=data.get("wait_duration_ms", data.get("waitDuration", 0.0)))


@dataclass
class AIDecisionStep(WorkflowStep):
    """Lets a prediction model pick the action to run."""
    type: ClassVar[str] = "ai_decision"

    decision: DecisionSpec = field(default_factory=DecisionSpec)

    def _fields(self) -> Dict[str, Any]:
        return {"decision": self.decision.to_dict()}

    @classmethod
    def _from_fields(cls, data: Dict[str, Any]) -> "AIDecisionStep":
        return cls(decision=DecisionSpec.from_dict(data.get("decision", data.get("aiDecision")) or {}))


STEP_TYPES: Dict[str, Type[WorkflowStep]] = {
    cls.type: cls
    for cls in (ActionStep, ConditionStep, ParallelStep, WaitStep, AIDecisionStep)
}


# === Workflow Definition ===


@dataclass
class Workflow:
    """A workflow definition."""
    id: str = ""

    # Identity
    name: str = ""
    description: str = ""
    category: WorkflowCategory = WorkflowCategory.BUSINESS

    # Definition
    triggers: List[Trigger] = field(default_factory=list)
    steps: List[WorkflowStep] = field(default_factory=list)

    # Settings
    is_active: bool = True
    ai_adaptive: bool = False
    priority: int = 5

    # Metadata
    created_at: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Statistics (written by the engine through the registry only)
    execution_count: int = 0
    success_rate: float = 0.0
    last_executed: Optional[datetime] = None

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        """Get a top-level step by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_entry_step(self) -> Optional[WorkflowStep]:
        """Get the first step."""
        return self.steps[0] if self.steps else None

    def validate(self) -> List[str]:
        """Validate workflow definition. Returns list of errors."""
        errors = []

        if not self.name:
            errors.append("Workflow name is required")

        if not self.steps:
            errors.append("Workflow must have at least one step")

        seen = set()
        for step in _walk_steps(self.steps):
            if step.id in seen:
                errors.append(f"Duplicate step id: {step.id}")
            seen.add(step.id)

            if isinstance(step, AIDecisionStep):
                decision = step.decision
                if decision.fallback_action is None:
                    errors.append(f"Step {step.id} has no fallback action")
                if not 0.0 <= decision.confidence <= 1.0:
                    errors.append(f"Step {step.id} confidence must be within [0, 1]")
            elif isinstance(step, ParallelStep) and not step.steps:
                errors.append(f"Parallel step {step.id} has no child steps")
            elif isinstance(step, WaitStep) and step.wait_duration_ms < 0:
                errors.append(f"Wait step {step.id} has a negative duration")

            if step.retry_policy and step.retry_policy.max_retries < 0:
                errors.append(f"Step {step.id} has a negative max_retries")

        # Successors must name a top-level step or the end marker
        step_ids = {s.id for s in self.steps}
        for step in self.steps:
            for successor in step.successors():
                if successor != END_WORKFLOW and successor not in step_ids:
                    errors.append(f"Step {step.id} references unknown step: {successor}")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "triggers": [t.to_dict() for t in self.triggers],
            "steps": [s.to_dict() for s in self.steps],
            "is_active": self.is_active,
            "ai_adaptive": self.ai_adaptive,
            "priority": self.priority,
            "created_at": self.created_at.isoformat(),
            "metadata": self.metadata,
            "execution_count": self.execution_count,
            "success_rate": self.success_rate,
            "last_executed": _iso(self.last_executed),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        """Create from dictionary."""
        workflow = cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            description=data.get("description", ""),
            category=WorkflowCategory(data.get("category", "business")),
            is_active=data.get("is_active", data.get("isActive", True)),
            ai_adaptive=data.get("ai_adaptive", data.get("aiAdaptive", False)),
            priority=data.get("priority", 5),
            metadata=dict(data.get("metadata") or {}),
            execution_count=data.get("execution_count", data.get("executionCount", 0)),
            success_rate=data.get("success_rate", data.get("successRate", 0.0)),
            last_executed=_parse_datetime(data.get("last_executed", data.get("lastExecuted"))),
        )

        created_at = _parse_datetime(data.get("created_at", data.get("createdAt")))
        if created_at:
            workflow.created_at = created_at

        workflow.triggers = [Trigger.from_dict(t) for t in data.get("triggers", [])]
        workflow.steps = [WorkflowStep.from_dict(s) for s in data.get("steps", [])]

        return workflow


def _walk_steps(steps: List[WorkflowStep]):
    for step in steps:
        yield step
        if isinstance(step, ParallelStep):
            yield from _walk_steps(step.steps)


# === Execution Types ===


@dataclass
class ExecutedStep:
    """Audit record for one step run, retries included."""
    step_id: str = ""
    status: StepStatus = StepStatus.PENDING
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: Any = None
    error: Optional[str] = None
    retry_count: int = 0

    def start(self, now: Optional[datetime] = None) -> None:
        """Mark step as running."""
        self.status = StepStatus.RUNNING
        self.started_at = now or datetime.now()

    def complete(self, result: Any = None, now: Optional[datetime] = None) -> None:
        """Mark step as completed."""
        self.status = StepStatus.COMPLETED
        self.result = result
        self._stamp(now)

    def fail(self, error: str, now: Optional[datetime] = None) -> None:
        """Mark step as failed."""
        self.status = StepStatus.FAILED
        self.error = error
        self._stamp(now)

    def _stamp(self, now: Optional[datetime]) -> None:
        self.completed_at = now or datetime.now()
        self.duration_ms = (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": _iso(self.completed_at),
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
            "retry_count": self.retry_count,
        }


@dataclass
class ExecutionLog:
    """One entry of an execution's own log."""
    timestamp: datetime = field(default_factory=datetime.now)
    level: LogLevel = LogLevel.INFO
    message: str = ""
    step_id: Optional[str] = None
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "step_id": self.step_id,
            "data": self.data,
        }


@dataclass
class WorkflowExecution:
    """One run of a workflow."""
    id: str = field(default_factory=lambda: generate_id("exec"))
    workflow_id: str = ""
    workflow_name: str = ""

    # State
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_step_id: Optional[str] = None

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None

    # Audit trail
    executed_steps: List[ExecutedStep] = field(default_factory=list)
    logs: List[ExecutionLog] = field(default_factory=list)

    # Data shared between steps
    variables: Dict[str, Any] = field(default_factory=dict)

    # Provenance
    triggered_by: str = "manual"
    error: Optional[str] = None

    def add_log(
        self,
        level: LogLevel,
        message: str,
        step_id: Optional[str] = None,
        data: Any = None,
        now: Optional[datetime] = None,
    ) -> ExecutionLog:
        """Append an execution log entry."""
        entry = ExecutionLog(
            timestamp=now or datetime.now(),
            level=level,
            message=message,
            step_id=step_id,
            data=data,
        )
        self.logs.append(entry)
        return entry

    def recent_logs(self, count: int = 5) -> List[ExecutionLog]:
        """The last ``count`` log entries."""
        return self.logs[-count:]

    def is_terminal(self) -> bool:
        """Check if execution is in a terminal state."""
        return self.status in TERMINAL_STATUSES

    def finish(
        self,
        status: ExecutionStatus,
        error: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Move to a terminal status and stamp timing."""
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {status.value}")
        self.status = status
        if error is not None:
            self.error = error
        self.completed_at = now or datetime.now()
        self.duration_ms = (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "status": self.status.value,
            "current_step_id": self.current_step_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": _iso(self.completed_at),
            "duration_ms": self.duration_ms,
            "executed_steps": [s.to_dict() for s in self.executed_steps],
            "variables": self.variables,
            "logs": [entry.to_dict() for entry in self.logs],
            "triggered_by": self.triggered_by,
            "error": self.error,
        }


# === Runtime results ===


@dataclass
class StepOutcome:
    """
    Result of running one step.

    A step that ran cleanly but reported a negative result (a false
    condition) has ``success=False`` and no ``error``, and the engine
    follows ``on_failure``.
    """
    success: bool = True
    result: Any = None
    error: Optional[str] = None

    @property
    def errored(self) -> bool:
        return self.error is not None


@dataclass
class DecisionOutcome:
    """Result of an AI decision."""
    label: str = ""
    confidence: float = 0.0
    action: Optional[ActionSpec] = None
    action_result: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "decision": self.label,
            "confidence": self.confidence,
            "action": self.action.to_dict() if self.action else None,
            "result": self.action_result,
        }


# === Event Types ===


@dataclass
class WorkflowEvent:
    """An inbound event routed against workflow triggers."""
    type: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowEvent":
        """Create from dictionary."""
        return cls(
            type=data.get("type", ""),
            data=dict(data.get("data") or {}),
            source=data.get("source"),
        )


@dataclass
class MonitorEvent:
    """An execution lifecycle event pushed to monitor subscribers."""
    type: MonitorEventType = MonitorEventType.STARTED
    execution_id: str = ""
    workflow_id: str = ""
    status: Optional[ExecutionStatus] = None
    step_id: Optional[str] = None
    data: Any = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value if self.status else None,
            "step_id": self.step_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }
