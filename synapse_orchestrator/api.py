"""
Synapse Orchestrator API Routes

FastAPI routes and the monitoring WebSocket for the workflow engine.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from synapse_orchestrator.engine import WorkflowEngine
from synapse_orchestrator.errors import ConfigurationError, NotFoundError, OrchestratorError
from synapse_orchestrator.monitoring.monitor import Subscription
from synapse_orchestrator.types import (
    ExecutionStatus,
    Workflow,
    WorkflowCategory,
    WorkflowEvent,
    WorkflowExecution,
)

logger = structlog.get_logger(__name__)

CAPABILITIES = ["workflow_execution", "real_time_monitoring", "ai_decisions"]


# === Request/Response Models ===


class RegisterWorkflowRequest(BaseModel):
    """Register workflow request."""
    id: Optional[str] = None
    name: str = Field(..., description="Workflow name")
    description: str = ""
    category: str = "business"
    triggers: List[Dict[str, Any]] = Field(default_factory=list)
    steps: List[Dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True
    ai_adaptive: bool = False
    priority: int = 5
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExecuteWorkflowRequest(BaseModel):
    """Execute workflow request."""
    triggered_by: str = "manual"
    initial_data: Dict[str, Any] = Field(default_factory=dict)
    wait: bool = Field(default=False, description="Block until the execution is terminal")
    timeout: Optional[float] = None


class RouteEventRequest(BaseModel):
    """Inbound event request."""
    type: str = Field(..., description="Event type")
    data: Dict[str, Any] = Field(default_factory=dict)
    source: Optional[str] = None


def _execution_response(execution: WorkflowExecution) -> Dict[str, Any]:
    response = {"execution": execution.to_dict()}
    if execution.status == ExecutionStatus.FAILED:
        response["execution_id"] = execution.id
        response["recent_logs"] = [entry.to_dict() for entry in execution.recent_logs()]
    return response


# === Route Setup ===


def setup_orchestrator_routes(app, engine: WorkflowEngine) -> None:
    """
    Setup orchestrator routes.

    Args:
        app: FastAPI application
        engine: Workflow engine instance
    """
    router = APIRouter(prefix="/orchestrator", tags=["Orchestrator"])
    monitoring_socket = MonitoringWebSocket(engine)

    # === Workflow Routes ===

    @router.get("/workflows", response_model=Dict[str, Any])
    async def list_workflows(
        active_only: bool = False,
        category: Optional[str] = None,
    ):
        """List workflows with registry statistics."""
        try:
            category_filter = WorkflowCategory(category) if category else None
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown category: {category}")

        workflows = await engine.registry.list(active_only=active_only, category=category_filter)
        return {
            "success": True,
            "workflows": [w.to_dict() for w in workflows],
            "stats": engine.registry.get_stats(),
        }

    @router.post("/workflows", response_model=Dict[str, Any])
    async def register_workflow(request: RegisterWorkflowRequest):
        """Register or replace a workflow."""
        try:
            workflow = Workflow.from_dict(request.model_dump(exclude_none=True))
            stored = await engine.register_workflow(workflow)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=e.to_dict())
        except (ValueError, KeyError) as e:
            raise HTTPException(status_code=400, detail=str(e))

        return {"workflow": stored.to_dict()}

    @router.get("/workflows/{workflow_id}", response_model=Dict[str, Any])
    async def get_workflow(workflow_id: str):
        """Get a workflow by ID."""
        workflow = await engine.registry.get(workflow_id)
        if not workflow:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return {"workflow": workflow.to_dict()}

    @router.post("/workflows/{workflow_id}/activate")
    async def activate_workflow(workflow_id: str):
        """Activate a workflow."""
        try:
            workflow = await engine.registry.set_active(workflow_id, True)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.to_dict())
        return {"workflow": workflow.to_dict()}

    @router.post("/workflows/{workflow_id}/deactivate")
    async def deactivate_workflow(workflow_id: str):
        """Deactivate a workflow."""
        try:
            workflow = await engine.registry.set_active(workflow_id, False)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.to_dict())
        return {"workflow": workflow.to_dict()}

    # === Execution Routes ===

    @router.post("/workflows/{workflow_id}/execute", response_model=Dict[str, Any])
    async def execute_workflow(
        workflow_id: str,
        request: Optional[ExecuteWorkflowRequest] = None,
    ):
        """Start a workflow execution."""
        request = request or ExecuteWorkflowRequest()
        try:
            execution = await engine.start(
                workflow_id,
                triggered_by=request.triggered_by,
                initial_data=request.initial_data,
            )
            if request.wait:
                execution = await engine.wait_for(execution.id, request.timeout)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.to_dict())
        except asyncio.TimeoutError:
            execution = engine.get_execution(execution.id)

        return _execution_response(execution)

    @router.get("/executions", response_model=Dict[str, Any])
    async def list_executions():
        """Live executions, recent history and aggregate statistics."""
        active, history, stats = engine.list_executions()
        return {
            "active": [e.to_dict() for e in active],
            "history": [e.to_dict() for e in history],
            "stats": stats,
        }

    @router.get("/executions/{execution_id}", response_model=Dict[str, Any])
    async def get_execution(execution_id: str):
        """Get an execution by ID."""
        execution = engine.get_execution(execution_id)
        if not execution:
            raise HTTPException(status_code=404, detail="Execution not found")
        return _execution_response(execution)

    @router.post("/executions/{execution_id}/pause")
    async def pause_execution(execution_id: str):
        """Pause a running execution."""
        execution = await engine.pause(execution_id)
        if not execution:
            raise HTTPException(status_code=404, detail="Execution not found or not running")
        return {"execution": execution.to_dict()}

    @router.post("/executions/{execution_id}/resume")
    async def resume_execution(execution_id: str):
        """Resume a paused execution."""
        execution = await engine.resume(execution_id)
        if not execution:
            raise HTTPException(status_code=404, detail="Execution not found or not paused")
        return {"execution": execution.to_dict()}

    @router.post("/executions/{execution_id}/cancel")
    async def cancel_execution(execution_id: str):
        """Cancel a running or paused execution."""
        execution = await engine.cancel(execution_id)
        if not execution:
            raise HTTPException(status_code=404, detail="Execution not found or already completed")
        return {"execution": execution.to_dict()}

    # === Event Routes ===

    @router.post("/events", response_model=Dict[str, Any])
    async def route_event(request: RouteEventRequest):
        """Start every workflow whose triggers match the event."""
        event = WorkflowEvent(type=request.type, data=request.data, source=request.source)
        triggered = await engine.route_event(event)
        return {"triggered": [e.to_dict() for e in triggered]}

    @router.get("/stats", response_model=Dict[str, Any])
    async def get_stats(
        history: int = Query(default=0, ge=0, le=1000),
    ):
        """Engine statistics."""
        stats = engine.get_stats()
        if history:
            stats["recent_history"] = [e.to_dict() for e in engine.store.history(history)]
        return stats

    # === Monitoring WebSocket ===

    @router.websocket("/ws")
    async def monitoring_endpoint(websocket: WebSocket):
        await monitoring_socket.handle(websocket)

    app.include_router(router)


class MonitoringWebSocket:
    """
    WebSocket handler for real-time execution monitoring.

    Protocol:
    Client sends:
    - {"type": "start_monitoring", "interval": 3000}
    - {"type": "stop_monitoring"}
    - {"type": "execute_workflow", "workflowId": "...", "triggeredBy": "...", "initialData": {...}}
    - {"type": "ping"}

    Server sends:
    - {"type": "connection_established", "capabilities": [...]}
    - {"type": "monitoring_started", "interval": ...}
    - {"type": "workflow_status_update", "data": {...}}
    - {"type": "monitoring_stopped"}
    - {"type": "workflow_execution_started", "execution": {...}}
    - {"type": "execution_event", "data": {...}}
    - {"type": "pong", "activeExecutions": n}
    - {"type": "error", "message": "..."}
    """

    def __init__(self, engine: WorkflowEngine):
        self.engine = engine
        self._connections = 0

    async def handle(self, websocket: WebSocket) -> None:
        """Handle a WebSocket connection."""
        await websocket.accept()
        self._connections += 1

        send_lock = asyncio.Lock()

        async def send(data: Dict[str, Any]) -> None:
            async with send_lock:
                await websocket.send_json(data)

        subscription = self.engine.monitor.subscribe()
        pump = asyncio.create_task(self._pump(subscription, send))

        logger.info("monitoring_connected", subscription_id=subscription.id)

        try:
            await send({
                "type": "connection_established",
                "message": "Connected to the Synapse workflow orchestrator",
                "capabilities": CAPABILITIES,
                "timestamp": datetime.now().isoformat(),
            })

            while True:
                try:
                    data = await websocket.receive_json()
                except json.JSONDecodeError:
                    await send({"type": "error", "message": "Invalid JSON"})
                    continue

                await self._handle_message(data, subscription, send)

        except WebSocketDisconnect:
            pass

        finally:
            self.engine.monitor.unsubscribe(subscription)
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
            self._connections -= 1
            logger.info("monitoring_disconnected", subscription_id=subscription.id)

    async def _pump(self, subscription: Subscription, send) -> None:
        """Forward monitor messages to the socket."""
        async for message in subscription.events():
            try:
                await send(message)
            except (WebSocketDisconnect, RuntimeError):
                return

    async def _handle_message(
        self,
        data: Any,
        subscription: Subscription,
        send,
    ) -> None:
        """Handle an incoming WebSocket message."""
        msg_type = data.get("type") if isinstance(data, dict) else None

        try:
            if msg_type == "start_monitoring":
                raw_interval = data.get("interval") or self.engine.monitor.snapshot_interval_ms
                try:
                    interval = float(raw_interval)
                    subscription.start_snapshots(interval)
                except (TypeError, ValueError):
                    await send({
                        "type": "error",
                        "message": "Invalid monitoring interval",
                        "details": str(raw_interval),
                    })
                    return
                await send({"type": "monitoring_started", "interval": interval})

            elif msg_type == "stop_monitoring":
                subscription.stop_snapshots()
                await send({"type": "monitoring_stopped"})

            elif msg_type == "execute_workflow":
                execution = await self.engine.start(
                    data.get("workflowId") or data.get("workflow_id", ""),
                    triggered_by=data.get("triggeredBy", "websocket"),
                    initial_data=data.get("initialData") or {},
                )
                await send({
                    "type": "workflow_execution_started",
                    "execution": execution.to_dict(),
                })

            elif msg_type == "ping":
                await send({
                    "type": "pong",
                    "timestamp": datetime.now().isoformat(),
                    "activeExecutions": len(self.engine.store.active()),
                })

            else:
                await send({
                    "type": "error",
                    "message": f"Unknown message type: {msg_type}",
                })

        except OrchestratorError as e:
            logger.warning("websocket_request_failed", type=msg_type, error=e.message)
            await send({
                "type": "error",
                "message": "Error processing message",
                "details": e.message,
            })

    def get_stats(self) -> Dict[str, Any]:
        return {"connections": self._connections}
