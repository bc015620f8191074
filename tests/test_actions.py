"""
Tests for the action executor and built-in handlers.
"""

import asyncio

import pytest

from conftest import ScriptedHandler, make_executor

from synapse_orchestrator.actions.executor import ActionExecutor
from synapse_orchestrator.errors import ActionExecutionError, ActionTimeoutError
from synapse_orchestrator.types import ActionSpec, ActionType, RetryPolicy


class TestBuiltinHandlers:
    """Tests for the simulated integrations."""

    @pytest.mark.asyncio
    async def test_notification_receipt(self):
        executor = make_executor()
        action = ActionSpec(
            type=ActionType.NOTIFICATION,
            target="legal_team",
            parameters={"type": "legal_escalation"},
        )

        result = await executor.execute(action, {})

        assert result["sent"] is True
        assert result["target"] == "legal_team"
        assert result["message"] == "legal_escalation"
        assert "timestamp" in result

    @pytest.mark.asyncio
    async def test_templates_resolve_from_variables(self):
        executor = make_executor()
        action = ActionSpec(
            type=ActionType.EMAIL,
            target="{{ client.email }}",
            parameters={"template": "Hello {{ client.name }}"},
        )

        result = await executor.execute(action, {"client": {"email": "ops@acme.test", "name": "Acme"}})

        assert result["to"] == "ops@acme.test"
        assert result["template"] == "Hello Acme"

    @pytest.mark.asyncio
    async def test_every_type_has_a_handler(self):
        executor = make_executor()
        for action_type in ActionType:
            assert executor.get_handler(action_type) is not None
            result = await executor.execute(ActionSpec(type=action_type, target="t"), {})
            assert isinstance(result, dict)


class TestActionExecutor:
    """Tests for dispatch, timeouts and retries."""

    @pytest.mark.asyncio
    async def test_unsupported_type(self):
        executor = ActionExecutor(register_builtins=False)

        with pytest.raises(ActionExecutionError) as exc_info:
            await executor.execute(ActionSpec(type=ActionType.SMS), {})

        assert exc_info.value.error_type == "UnsupportedActionType"

    @pytest.mark.asyncio
    async def test_handler_errors_keep_their_type(self):
        executor = make_executor(sms=ScriptedHandler(failures=1, error=ConnectionError))

        with pytest.raises(ActionExecutionError) as exc_info:
            await executor.execute(ActionSpec(type=ActionType.SMS), {})

        assert exc_info.value.error_type == "ConnectionError"

    @pytest.mark.asyncio
    async def test_timeout(self):
        executor = make_executor(api_call=ScriptedHandler(latency_ms=500))

        with pytest.raises(ActionTimeoutError):
            await executor.execute(ActionSpec(type=ActionType.API_CALL, timeout_ms=20), {})

    @pytest.mark.asyncio
    async def test_retry_until_success(self):
        handler = ScriptedHandler(failures=2)
        executor = make_executor(api_call=handler)
        policy = RetryPolicy(max_retries=3, retry_delay_ms=1, retry_conditions=["ConnectionError"])
        retries = []

        result = await executor.execute_with_retry(
            ActionSpec(type=ActionType.API_CALL),
            {},
            policy,
            lambda count, error, delay: retries.append((count, delay)),
        )

        assert result["attempt"] == 3
        assert retries == [(1, 1), (2, 2)]

    @pytest.mark.asyncio
    async def test_retry_bound(self):
        handler = ScriptedHandler(failures=10)
        executor = make_executor(api_call=handler)
        policy = RetryPolicy(max_retries=2, retry_delay_ms=1, retry_conditions=["ConnectionError"])

        with pytest.raises(ActionExecutionError):
            await executor.execute_with_retry(ActionSpec(type=ActionType.API_CALL), {}, policy)

        assert len(handler.calls) == 3

    @pytest.mark.asyncio
    async def test_unclassified_errors_are_not_retried(self):
        handler = ScriptedHandler(failures=1, error=ValueError)
        executor = make_executor(api_call=handler)
        policy = RetryPolicy(max_retries=3, retry_delay_ms=1, retry_conditions=["ConnectionError"])

        with pytest.raises(ActionExecutionError):
            await executor.execute_with_retry(ActionSpec(type=ActionType.API_CALL), {}, policy)

        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_timeouts_retry_under_alias(self):
        handler = ScriptedHandler(latency_ms=200)
        executor = make_executor(api_call=handler)
        policy = RetryPolicy(max_retries=1, retry_delay_ms=1, retry_conditions=["TimeoutError"])

        with pytest.raises(ActionTimeoutError):
            await executor.execute_with_retry(
                ActionSpec(type=ActionType.API_CALL, timeout_ms=10), {}, policy
            )

        assert len(handler.calls) == 2

    @pytest.mark.asyncio
    async def test_action_retries_synthesise_a_policy(self):
        handler = ScriptedHandler(failures=1, error=RuntimeError)
        executor = make_executor(data_update=handler)

        result = await executor.execute_with_retry(ActionSpec(type=ActionType.DATA_UPDATE, retries=1), {})

        assert result["ok"] is True
        assert len(handler.calls) == 2

    @pytest.mark.asyncio
    async def test_cancelled_event_stops_retries(self):
        handler = ScriptedHandler(failures=10)
        executor = make_executor(api_call=handler)
        policy = RetryPolicy(max_retries=5, retry_delay_ms=1, retry_conditions=["ConnectionError"])
        cancelled = asyncio.Event()
        cancelled.set()
        retries = []

        with pytest.raises(ActionExecutionError):
            await executor.execute_with_retry(
                ActionSpec(type=ActionType.API_CALL),
                {},
                policy,
                lambda count, error, delay: retries.append(count),
                cancelled,
            )

        assert len(handler.calls) == 1
        assert retries == []

    @pytest.mark.asyncio
    async def test_cancel_interrupts_backoff(self):
        handler = ScriptedHandler(failures=10)
        executor = make_executor(api_call=handler)
        policy = RetryPolicy(max_retries=5, retry_delay_ms=60_000, retry_conditions=["ConnectionError"])
        cancelled = asyncio.Event()

        task = asyncio.create_task(
            executor.execute_with_retry(ActionSpec(type=ActionType.API_CALL), {}, policy, cancelled=cancelled)
        )
        await asyncio.sleep(0.05)
        cancelled.set()

        with pytest.raises(ActionExecutionError):
            await asyncio.wait_for(task, timeout=1)

        assert len(handler.calls) == 1

    def test_no_policy_without_retries(self):
        executor = make_executor()
        assert executor.policy_for(ActionSpec(type=ActionType.SMS)) is None
