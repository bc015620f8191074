"""
Synapse Built-in Action Handlers

Simulated integrations: each handler waits a fixed, type-specific latency
and returns a canned receipt. Real integrations replace them through
``ActionExecutor.register_handler``.
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime
from typing import Any, Dict

import structlog

from synapse_orchestrator.actions.executor import BaseActionHandler
from synapse_orchestrator.types import ActionSpec

logger = structlog.get_logger(__name__)


class SimulatedActionHandler(BaseActionHandler):
    """Base for handlers that stand in for a real integration."""

    latency_ms: float = 0.0

    def __init__(self, latency_scale: float = 1.0):
        self.latency_scale = latency_scale

    async def simulate_latency(self) -> None:
        delay = self.latency_ms * self.latency_scale
        if delay > 0:
            await asyncio.sleep(delay / 1000)

    async def execute(
        self,
        action: ActionSpec,
        variables: Dict[str, Any],
    ) -> Any:
        await self.simulate_latency()
        params = self.resolve_params(action.parameters, variables)
        target = self.resolve(action.target, variables)
        result = self.receipt(target, params)
        result["timestamp"] = datetime.now().isoformat()

        logger.info(
            "simulated_action",
            action_type=action.type.value,
            target=target,
        )
        return result

    def receipt(self, target: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class NotificationActionHandler(SimulatedActionHandler):
    """Push a notification to a user or team."""

    latency_ms = 500

    def receipt(self, target, params):
        return {"sent": True, "target": target, "message": params.get("type")}


class EmailActionHandler(SimulatedActionHandler):
    """Send a templated email."""

    latency_ms = 1000

    def receipt(self, target, params):
        return {"sent": True, "to": target, "template": params.get("template")}


class DataUpdateActionHandler(SimulatedActionHandler):
    """Write a record to a table."""

    latency_ms = 300

    def receipt(self, target, params):
        return {"updated": True, "table": target, "parameters": params}


class ApiCallActionHandler(SimulatedActionHandler):
    """Call an external API."""

    latency_ms = 800

    def receipt(self, target, params):
        return {"success": True, "endpoint": target, "response": params}


class FileGenerationActionHandler(SimulatedActionHandler):
    """Render a document."""

    latency_ms = 2000

    def receipt(self, target, params):
        millis = int(datetime.now().timestamp() * 1000)
        return {
            "generated": True,
            "filename": f"{params.get('name', target)}_{millis}.pdf",
            "size": random.randint(0, 999999),
        }


class SmsActionHandler(SimulatedActionHandler):
    """Send a text message."""

    latency_ms = 600

    def receipt(self, target, params):
        return {"sent": True, "to": target, "message": params.get("message")}


class VoiceCallActionHandler(SimulatedActionHandler):
    """Place a phone call."""

    latency_ms = 3000

    def receipt(self, target, params):
        return {
            "called": True,
            "number": target,
            "duration": random.randint(0, 299),  # seconds
            "status": "answered",
        }
