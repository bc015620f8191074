"""
Synapse Orchestrator - Main Application Entry Point

FastAPI application wiring the workflow engine, its REST routes and the
monitoring WebSocket.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from synapse_orchestrator.actions.executor import ActionExecutor
from synapse_orchestrator.api import setup_orchestrator_routes
from synapse_orchestrator.conditions.evaluator import AIConditionEvaluator, ConditionEvaluator
from synapse_orchestrator.core.config import SynapseConfig, get_config, set_config
from synapse_orchestrator.decisions.models import PredictionModelRegistry, SimulatedPredictionModel
from synapse_orchestrator.engine import WorkflowEngine
from synapse_orchestrator.execution.store import ExecutionStore
from synapse_orchestrator.monitoring.monitor import ExecutionMonitor
from synapse_orchestrator.registry import WorkflowRegistry
from synapse_orchestrator.templates.builtin import get_builtin_workflows
from synapse_orchestrator.triggers.scheduler import CronScheduler


# Configure structured logging
def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""
    logging.basicConfig(format="%(message)s", level=log_level.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def create_engine(config: Optional[SynapseConfig] = None) -> WorkflowEngine:
    """
    Build a workflow engine from configuration.

    Built-in workflows are registered by ``load_builtin_workflows`` during
    application startup, not here.
    """
    config = config or get_config()
    orchestrator = config.orchestrator

    executor = ActionExecutor(
        default_timeout_ms=orchestrator.default_action_timeout_ms,
        default_retry_delay_ms=orchestrator.default_retry_delay_ms,
        latency_scale=orchestrator.action_latency_scale,
    )

    models = PredictionModelRegistry(
        default=SimulatedPredictionModel(latency_ms=1500 * orchestrator.action_latency_scale),
    )

    evaluator = ConditionEvaluator(
        ai=AIConditionEvaluator(models) if orchestrator.ai_conditions else None,
    )

    monitor = ExecutionMonitor(
        snapshot_interval_ms=config.monitoring.snapshot_interval_ms,
        queue_size=config.monitoring.subscriber_queue_size,
    )

    scheduler = None
    if config.scheduler.enabled:
        scheduler = CronScheduler(check_interval=config.scheduler.check_interval)

    return WorkflowEngine(
        registry=WorkflowRegistry(persistence_path=orchestrator.persistence_path),
        store=ExecutionStore(history_limit=orchestrator.history_limit),
        action_executor=executor,
        condition_evaluator=evaluator,
        prediction_model=models,
        monitor=monitor,
        scheduler=scheduler,
        max_concurrent_executions=orchestrator.max_concurrent_executions,
        api_history_limit=orchestrator.api_history_limit,
    )


async def load_builtin_workflows(engine: WorkflowEngine) -> int:
    """Register the built-in workflows that are not already present."""
    loaded = 0
    for workflow in get_builtin_workflows():
        if await engine.registry.get(workflow.id) is None:
            await engine.register_workflow(workflow)
            loaded += 1
    return loaded


def create_app(
    config: Optional[SynapseConfig] = None,
    engine: Optional[WorkflowEngine] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Optional configuration override
        engine: Optional pre-built engine (mainly for tests)

    Returns:
        Configured FastAPI application
    """
    if config:
        set_config(config)
    else:
        config = get_config()

    # Setup logging
    setup_logging(config.monitoring.log_level.value, config.monitoring.log_format)

    engine = engine or create_engine(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info("Starting Synapse orchestrator")

        await engine.initialize()

        if config.orchestrator.load_builtin_workflows:
            loaded = await load_builtin_workflows(engine)
            logger.info("builtin_workflows_loaded", count=loaded)

        app.state.engine = engine

        yield

        logger.info("Shutting down Synapse orchestrator")
        await engine.shutdown()

    app = FastAPI(
        title="Synapse Workflow Orchestrator",
        description="""
        Trigger-driven workflow engine for business automations with:
        - Multi-step, branching and parallel workflows
        - AI decisions with guaranteed fallbacks
        - Pause, resume and cancel
        - Real-time monitoring over WebSocket
        """,
        version="1.0.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_orchestrator_routes(app, engine)

    @app.get("/health")
    async def health():
        return {"status": "ok", "engine": engine.get_stats()}

    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 8000,
    reload: bool = False,
) -> None:
    """
    Run the orchestrator server.

    Args:
        host: Host to bind to
        port: Port to bind to
        reload: Enable auto-reload for development
    """
    config = get_config()
    config.host = host
    config.port = port
    set_config(config)

    # Executions live in process memory, so a single worker
    uvicorn.run(
        "synapse_orchestrator.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=1,
        log_level=config.monitoring.log_level.value.lower(),
    )


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Synapse Workflow Orchestrator")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    run_server(host=args.host, port=args.port, reload=args.reload)
