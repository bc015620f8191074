"""
Synapse Action Executor

Executes workflow actions of all types, with timeouts and retries.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import structlog

from synapse_orchestrator.errors import ActionExecutionError, ActionTimeoutError
from synapse_orchestrator.types import ActionSpec, ActionType, RetryPolicy

logger = structlog.get_logger(__name__)

# on_retry(retry_count, error, delay_ms)
RetryCallback = Callable[[int, BaseException, float], Union[None, Awaitable[None]]]


class ActionExecutor:
    """
    Executes workflow actions.

    Supports:
    - Notifications, emails, SMS and voice calls
    - Data updates
    - API calls
    - File generation
    """

    def __init__(
        self,
        default_timeout_ms: float = 30000.0,
        default_retry_delay_ms: float = 1000.0,
        latency_scale: float = 1.0,
        register_builtins: bool = True,
    ):
        self.default_timeout_ms = default_timeout_ms
        self.default_retry_delay_ms = default_retry_delay_ms
        self.latency_scale = latency_scale

        self._handlers: Dict[ActionType, "BaseActionHandler"] = {}

        if register_builtins:
            self._register_builtin_handlers()

    def _register_builtin_handlers(self) -> None:
        from synapse_orchestrator.actions.handlers import (
            ApiCallActionHandler,
            DataUpdateActionHandler,
            EmailActionHandler,
            FileGenerationActionHandler,
            NotificationActionHandler,
            SmsActionHandler,
            VoiceCallActionHandler,
        )

        scale = self.latency_scale
        self._handlers[ActionType.NOTIFICATION] = NotificationActionHandler(scale)
        self._handlers[ActionType.EMAIL] = EmailActionHandler(scale)
        self._handlers[ActionType.DATA_UPDATE] = DataUpdateActionHandler(scale)
        self._handlers[ActionType.API_CALL] = ApiCallActionHandler(scale)
        self._handlers[ActionType.FILE_GENERATION] = FileGenerationActionHandler(scale)
        self._handlers[ActionType.SMS] = SmsActionHandler(scale)
        self._handlers[ActionType.VOICE_CALL] = VoiceCallActionHandler(scale)

    async def execute(
        self,
        action: ActionSpec,
        variables: Dict[str, Any],
    ) -> Any:
        """
        Execute an action once.

        Args:
            action: Action specification
            variables: Execution variables visible to the handler

        Returns:
            Action result

        Raises:
            ActionTimeoutError: the handler exceeded the action timeout
            ActionExecutionError: any other handler failure
        """
        handler = self._handlers.get(action.type)
        if not handler:
            raise ActionExecutionError(
                f"Unsupported action type: {action.type.value}",
                error_type="UnsupportedActionType",
            )

        timeout_ms = action.timeout_ms if action.timeout_ms is not None else self.default_timeout_ms

        try:
            result = await asyncio.wait_for(
                handler.execute(action, variables),
                timeout=timeout_ms / 1000,
            )

            logger.debug(
                "action_executed",
                action_type=action.type.value,
                target=action.target,
                success=True,
            )

            return result

        except asyncio.TimeoutError:
            logger.error(
                "action_timeout",
                action_type=action.type.value,
                timeout_ms=timeout_ms,
            )
            raise ActionTimeoutError(
                f"Action {action.id} timed out after {timeout_ms:.0f}ms",
                details={"action_id": action.id, "timeout_ms": timeout_ms},
            )

        except ActionExecutionError:
            raise

        except Exception as e:
            logger.error(
                "action_error",
                action_type=action.type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ActionExecutionError(
                str(e) or type(e).__name__,
                error_type=type(e).__name__,
                details={"action_id": action.id},
            ) from e

    async def execute_with_retry(
        self,
        action: ActionSpec,
        variables: Dict[str, Any],
        policy: Optional[RetryPolicy] = None,
        on_retry: Optional[RetryCallback] = None,
        cancelled: Optional[asyncio.Event] = None,
    ) -> Any:
        """
        Execute an action, retrying classified failures.

        At most ``policy.max_retries`` extra attempts are made, waiting
        ``policy.delay_for(n)`` ms before retry ``n + 1``. Errors not named
        by ``policy.retry_conditions`` are raised immediately. Once
        ``cancelled`` is set no further attempt starts and the last error
        is raised.
        """
        policy = policy or self.policy_for(action)
        retry_count = 0

        while True:
            try:
                return await self.execute(action, variables)
            except ActionExecutionError as e:
                if policy is None or retry_count >= policy.max_retries or not policy.is_retryable(e):
                    raise
                if cancelled is not None and cancelled.is_set():
                    raise

                delay_ms = policy.delay_for(retry_count)
                if not await self._backoff(delay_ms, cancelled):
                    logger.info("action_retry_cancelled", action_id=action.id, retry_count=retry_count)
                    raise

                retry_count += 1

                logger.warning(
                    "action_retry",
                    action_id=action.id,
                    retry_count=retry_count,
                    delay_ms=delay_ms,
                    error=str(e),
                )

                if on_retry:
                    result = on_retry(retry_count, e, delay_ms)
                    if asyncio.iscoroutine(result):
                        await result

    async def _backoff(self, delay_ms: float, cancelled: Optional[asyncio.Event]) -> bool:
        """Wait out a retry delay. Returns False if cancelled first."""
        if cancelled is None:
            await asyncio.sleep(delay_ms / 1000)
            return True
        try:
            await asyncio.wait_for(cancelled.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            return True
        return False

    def policy_for(self, action: ActionSpec) -> Optional[RetryPolicy]:
        """Default policy for actions declaring ``retries`` without a step policy."""
        if not action.retries or action.retries <= 0:
            return None
        return RetryPolicy(
            max_retries=action.retries,
            retry_delay_ms=self.default_retry_delay_ms,
            backoff_multiplier=2.0,
            retry_conditions=["ActionExecutionError"],
        )

    def register_handler(
        self,
        action_type: ActionType,
        handler: "BaseActionHandler",
    ) -> None:
        """Register a custom action handler."""
        self._handlers[action_type] = handler
        logger.info("handler_registered", action_type=action_type.value)

    def get_handler(
        self,
        action_type: ActionType,
    ) -> Optional["BaseActionHandler"]:
        """Get a handler by action type."""
        return self._handlers.get(action_type)


class BaseActionHandler:
    """Base class for action handlers."""

    EXPRESSION_PATTERN = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")

    async def execute(
        self,
        action: ActionSpec,
        variables: Dict[str, Any],
    ) -> Any:
        """Execute the action."""
        raise NotImplementedError

    def resolve_params(
        self,
        params: Dict[str, Any],
        variables: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Resolve ``{{ name }}`` expressions in parameters."""
        if not params:
            return {}
        return {key: self.resolve(value, variables) for key, value in params.items()}

    def resolve(self, value: Any, variables: Dict[str, Any]) -> Any:
        """
        Resolve expressions in a value.

        ``"{{ client.email }}"`` alone returns the referenced value as is;
        expressions embedded in longer strings are interpolated.
        """
        if isinstance(value, str):
            match = self.EXPRESSION_PATTERN.fullmatch(value.strip())
            if match:
                return _lookup(variables, match.group(1))

            def replace(m):
                resolved = _lookup(variables, m.group(1))
                return str(resolved) if resolved is not None else ""

            return self.EXPRESSION_PATTERN.sub(replace, value)

        if isinstance(value, dict):
            return {k: self.resolve(v, variables) for k, v in value.items()}

        if isinstance(value, list):
            return [self.resolve(item, variables) for item in value]

        return value


def _lookup(variables: Dict[str, Any], path: str) -> Any:
    current: Any = variables
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
        if current is None:
            return None
    return current
