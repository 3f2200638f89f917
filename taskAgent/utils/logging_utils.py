"""Logging utilities for taskAgent."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

ROOT_LOGGER_NAME = "taskAgent"

Redactor = Callable[[str], str]


def setup_logging(level: int = logging.INFO, log_dir: str | Path = "logs") -> logging.Logger:
    """Setup logging configuration for taskAgent.

    Args:
        level: Level for the detailed file log (console stays at WARNING)
        log_dir: Directory for timestamped log files

    Returns:
        Configured package logger
    """
    logs_dir = Path(log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"taskagent_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.handlers = []

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("taskAgent session started")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)
    return logger


def _preview(text: str, limit: int = 500) -> str:
    if len(text) > limit:
        return text[:limit] + "... (truncated)"
    return text


def log_tool_call(
    logger: logging.Logger,
    tool_key: str,
    args: Dict[str, Any],
    step: Optional[int] = None,
    redact: Optional[Redactor] = None,
) -> None:
    """Log a tool invocation, redacting secrets from the arguments."""
    prefix = f"Step {step}: " if step is not None else ""
    logger.info(f"{prefix}Tool call: {tool_key}")
    rendered = json.dumps(args, ensure_ascii=False, default=str)
    if redact:
        rendered = redact(rendered)
    logger.debug(f"  Arguments: {_preview(rendered)}")


def log_tool_result(
    logger: logging.Logger,
    tool_key: str,
    content: Any,
    success: bool = True,
    duration_ms: Optional[int] = None,
    redact: Optional[Redactor] = None,
) -> None:
    """Log a tool execution result with a truncated preview."""
    status = "OK" if success else "FAIL"
    timing = f" ({duration_ms}ms)" if duration_ms is not None else ""
    logger.info(f"Tool result: {tool_key} -> {status}{timing}")
    rendered = str(content)
    if redact:
        rendered = redact(rendered)
    if success:
        logger.debug(f"  Result: {_preview(rendered)}")
    else:
        logger.warning(f"  {tool_key} error: {_preview(rendered)}")


def log_routing_decision(logger: logging.Logger, from_node: str, decision: str, reason: str = "") -> None:
    """Log a routing decision between graph nodes."""
    logger.info(f"Routing decision from {from_node}: -> {decision}")
    if reason:
        logger.info(f"  Reason: {reason}")


def log_node_entry(logger: logging.Logger, node_name: str, state: Dict[str, Any]) -> None:
    """Log node entry with a compact snapshot of the loop state."""
    logger.debug(
        f"[{node_name}] task={state.get('task_id')} step={state.get('step', 0)} "
        f"tool_calls={len(state.get('tool_results', []))} corrections={state.get('corrections', 0)}"
    )


def log_prompt(logger: logging.Logger, phase: str, prompt: str, max_length: int = 500) -> None:
    """Log the prompt sent for a phase, truncated to max_length."""
    logger.debug(f"Prompt for {phase} ({len(prompt)} chars):\n{_preview(prompt, max_length)}")


def log_safety_verdict(logger: logging.Logger, action_type: str, allowed: bool, reason: str) -> None:
    """Log a Safety Gate verdict; denials are warnings."""
    if allowed:
        logger.debug(f"Safety: {action_type} allowed")
    else:
        logger.warning(f"Safety: {action_type} blocked - {reason}")


def log_error(logger: logging.Logger, error: BaseException, context: str = "") -> None:
    """Log an error with context and traceback."""
    logger.error(f"Error occurred: {type(error).__name__}: {error}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)
