"""
Synapse Command Line Interface

Provides command-line access to a running orchestrator.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, Dict, Optional

import httpx

DEFAULT_URL = "http://localhost:8000"


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="synapse-orchestrator",
        description="Synapse Workflow Orchestrator CLI",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the orchestrator server")
    server_parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    server_parser.add_argument("--port", type=int, default=8000, help="Port")
    server_parser.add_argument("--reload", action="store_true", help="Auto-reload")

    # Workflow commands
    workflows_parser = subparsers.add_parser("workflows", help="List workflows")
    workflows_parser.add_argument("--active-only", action="store_true")
    workflows_parser.add_argument("--url", default=DEFAULT_URL, help="Server URL")

    executions_parser = subparsers.add_parser("executions", help="List executions")
    executions_parser.add_argument("--url", default=DEFAULT_URL, help="Server URL")

    execute_parser = subparsers.add_parser("execute", help="Start a workflow")
    execute_parser.add_argument("workflow_id", help="Workflow ID")
    execute_parser.add_argument("--data", type=json.loads, default={}, help="Initial data (JSON)")
    execute_parser.add_argument("--wait", action="store_true", help="Wait for completion")
    execute_parser.add_argument("--url", default=DEFAULT_URL, help="Server URL")

    # Execution control commands
    for action in ("pause", "resume", "cancel"):
        control_parser = subparsers.add_parser(action, help=f"{action.capitalize()} an execution")
        control_parser.add_argument("execution_id", help="Execution ID")
        control_parser.add_argument("--url", default=DEFAULT_URL, help="Server URL")

    # Event command
    event_parser = subparsers.add_parser("event", help="Route an event to workflow triggers")
    event_parser.add_argument("event_type", help="Event type")
    event_parser.add_argument("--data", type=json.loads, default={}, help="Event data (JSON)")
    event_parser.add_argument("--source", help="Event source")
    event_parser.add_argument("--url", default=DEFAULT_URL, help="Server URL")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    if args.command == "server":
        from synapse_orchestrator.main import run_server
        run_server(
            host=args.host,
            port=args.port,
            reload=args.reload,
        )

    elif args.command == "workflows":
        asyncio.run(cmd_workflows(args.url, args.active_only))

    elif args.command == "executions":
        asyncio.run(cmd_executions(args.url))

    elif args.command == "execute":
        asyncio.run(cmd_execute(args.url, args.workflow_id, args.data, args.wait))

    elif args.command in ("pause", "resume", "cancel"):
        asyncio.run(cmd_control(args.url, args.command, args.execution_id))

    elif args.command == "event":
        asyncio.run(cmd_event(args.url, args.event_type, args.data, args.source))


def _print_response(response: httpx.Response) -> None:
    if response.status_code == 200:
        print(json.dumps(response.json(), indent=2))
    else:
        print(f"Error: {response.status_code}")
        print(response.text)


async def cmd_workflows(base_url: str, active_only: bool) -> None:
    """List workflows."""
    async with httpx.AsyncClient() as client:
        response = await client.get(
            f"{base_url}/orchestrator/workflows",
            params={"active_only": active_only},
            timeout=10.0,
        )

        if response.status_code == 200:
            result = response.json()
            for workflow in result["workflows"]:
                state = "active" if workflow["is_active"] else "inactive"
                print(
                    f"- {workflow['id']}: {workflow['name']} "
                    f"[{workflow['category']}, priority {workflow['priority']}, {state}] "
                    f"runs={workflow['execution_count']} "
                    f"success={workflow['success_rate']:.0%}"
                )
        else:
            print(f"Error: {response.status_code}")


async def cmd_executions(base_url: str) -> None:
    """List executions."""
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{base_url}/orchestrator/executions", timeout=10.0)
        _print_response(response)


async def cmd_execute(
    base_url: str,
    workflow_id: str,
    data: Dict[str, Any],
    wait: bool,
) -> None:
    """Start a workflow execution."""
    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{base_url}/orchestrator/workflows/{workflow_id}/execute",
            json={"triggered_by": "cli", "initial_data": data, "wait": wait},
            timeout=300.0 if wait else 10.0,
        )
        _print_response(response)


async def cmd_control(base_url: str, action: str, execution_id: str) -> None:
    """Pause, resume or cancel an execution."""
    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{base_url}/orchestrator/executions/{execution_id}/{action}",
            timeout=10.0,
        )
        _print_response(response)


async def cmd_event(
    base_url: str,
    event_type: str,
    data: Dict[str, Any],
    source: Optional[str],
) -> None:
    """Route an event."""
    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{base_url}/orchestrator/events",
            json={"type": event_type, "data": data, "source": source},
            timeout=30.0,
        )

        if response.status_code == 200:
            triggered = response.json()["triggered"]
            print(f"Triggered {len(triggered)} execution(s)")
            for execution in triggered:
                print(f"- {execution['id']} ({execution['workflow_id']})")
        else:
            print(f"Error: {response.status_code}")


if __name__ == "__main__":
    main()
