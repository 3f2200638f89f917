#!/usr/bin/env python3
"""taskAgent CLI entrypoint.

Runs one task through the orchestration loop and prints the result.

Usage:
    python main.py "List the Python files under src and count their lines"

    # Pick a role and share findings under a plan id
    python main.py "Summarise README.md" --role researcher --plan demo

    # Restrict file and shell tools to another directory
    python main.py "Run the test suite" --workdir ../project
"""
import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path

from taskAgent.config import get_settings
from taskAgent.core import CancellationToken, ExecutionContext, ResultStatus, Task
from taskAgent.loop.events import LoopEvent
from taskAgent.runtime import build_application
from taskAgent.utils import TaskAgentError, log_error, setup_logging

LOGGER = logging.getLogger("taskAgent.main")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="taskAgent - autonomous tool-calling task runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("task", type=str, help="Task description")
    parser.add_argument("--role", type=str, default="executor", help="Role that runs the task (default: executor)")
    parser.add_argument("--plan", type=str, default=None, help="Plan id; enables the shared blackboard")
    parser.add_argument("--workdir", type=str, default=None, help="Root for local file and shell tools")
    parser.add_argument(
        "--max-delegation-depth",
        type=int,
        default=None,
        help="Nested delegation limit (clamped to 1-5)",
    )
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--quiet", action="store_true", help="Do not print progress events")
    return parser.parse_args(argv)


def _print_event(event: LoopEvent) -> None:
    payload = event.payload
    if event.type == "acting":
        print(f"[{event.role}] -> {payload.get('action')}")
    elif event.type == "tool-result":
        status = "ok" if payload.get("success") else "failed"
        print(f"[{event.role}] <- {payload.get('tool')} {status}: {str(payload.get('summary', ''))[:120]}")
    elif event.type == "error":
        print(f"[{event.role}] error: {payload.get('message')}")


async def async_main(argv=None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(getattr(logging, settings.observability.log_level.upper(), logging.INFO), settings.observability.log_dir)

    try:
        app = await build_application(settings, workdir=Path(args.workdir) if args.workdir else None)
    except TaskAgentError as e:
        log_error(LOGGER, e, "building application")
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 2

    if not args.quiet:
        app.events.subscribe(_print_event)

    token = CancellationToken()
    task_id = f"task-{uuid.uuid4().hex[:8]}"
    ctx = ExecutionContext(
        task_id=task_id,
        plan_id=args.plan,
        cancellation=token,
        max_delegation_depth=args.max_delegation_depth or settings.loop.max_delegation_depth,
        blackboard=app.blackboard if args.plan else None,
    )
    task = Task(id=task_id, description=args.task, assigned_role=args.role)

    try:
        result = await app.loop.run(task, ctx)
    except (KeyboardInterrupt, asyncio.CancelledError):
        token.cancel("Interrupted from the command line")
        print("\nInterrupted.", file=sys.stderr)
        return 130
    finally:
        await app.shutdown()

    if args.json:
        print(json.dumps({
            "status": result.status.value,
            "reason": result.reason.value,
            "confidence": result.confidence,
            "tier": result.tier.value,
            "loop_detected": result.loop_detected,
            "steps": result.steps,
            "tokens_in": result.tokens_in,
            "tokens_out": result.tokens_out,
            "tools_called": result.tools_called,
            "duration_ms": result.duration_ms,
            "output": result.output,
            "error": result.error,
        }, ensure_ascii=False, indent=2))
    else:
        print()
        print(f"Status: {result.status.value} ({result.reason.value}, confidence {result.confidence:.1f})")
        print(f"Steps: {result.steps} | Tools: {len(result.tools_called)} | "
              f"Tokens: {result.tokens_in} in / {result.tokens_out} out")
        print()
        print(result.output)
    return 0 if result.status != ResultStatus.FAILED else 1


def main() -> None:
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
