"""Prompt assembly for the orchestration loop.

System prompts come from Jinja2 templates in ``taskAgent/config/prompt_templates``;
per-step user prompts are assembled here from the task, prior context, tool
history, shared findings and the working-set cache.
"""

from __future__ import annotations

import os
import platform
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Tuple

from jinja2.sandbox import SandboxedEnvironment

from taskAgent.config.project_root import CONFIG_DIR
from taskAgent.core.models import ToolDefinition, ToolInvocationResult

TEMPLATE_DIR = CONFIG_DIR / "prompt_templates"
SYSTEM_TEMPLATE = "system.jinja2"
FINAL_SUMMARY_TEMPLATE = "final_summary.jinja2"

HISTORY_RESULT_MAX_CHARS = 1500
CORRECTION_HISTORY_MAX_CHARS = 800
SUMMARY_RESULT_MAX_CHARS = 300
PRIOR_RESULT_MAX_CHARS = 500
PARENT_TASK_MAX_CHARS = 300

JSON_FORMATS_REMINDER = (
    "You MUST respond with EXACTLY one of these JSON formats:\n\n"
    "To call a tool:\n"
    '{ "tool": "local::shell_execute", "args": { "command": "your command here" } }\n\n'
    "To list a directory:\n"
    '{ "tool": "local::directory_list", "args": { "path": "." } }\n\n'
    "To signal task completion:\n"
    '{ "done": true, "summary": "your final answer here" }\n\n'
    "Do NOT include any text outside the JSON object. Respond with ONLY the JSON."
)


@lru_cache(maxsize=8)
def _load_template(name: str) -> str:
    with open(TEMPLATE_DIR / name, "r", encoding="utf-8") as f:
        return f.read()


def _render(name: str, **params) -> str:
    env = SandboxedEnvironment(trim_blocks=True, lstrip_blocks=True)
    return env.from_string(_load_template(name)).render(**params).strip()


def build_system_prompt(role: str, tools: Sequence[ToolDefinition], cwd: Optional[str] = None) -> str:
    return _render(
        SYSTEM_TEMPLATE,
        role=role,
        tools=list(tools),
        platform=f"{platform.system()} ({platform.machine()})",
        cwd=cwd or os.getcwd(),
    )


def build_final_summary_system_prompt(role: str, stop_reason: str) -> str:
    return _render(FINAL_SUMMARY_TEMPLATE, role=role, stop_reason=stop_reason)


def _clip(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "\n...(truncated)"
    return text


def format_tool_history(results: Iterable[ToolInvocationResult], max_chars: int = HISTORY_RESULT_MAX_CHARS) -> str:
    lines = []
    for i, result in enumerate(results, 1):
        status = "SUCCESS" if result.success else "FAILED"
        lines.append(f"Step {i}: {result.tool_key} -> {status}:\n{_clip(result.content, max_chars)}")
    return "\n\n".join(lines)


def format_prior_results(sibling_results: Sequence[Tuple[str, str]]) -> str:
    if not sibling_results:
        return ""
    lines = [f"- {step_id}: {output[:PRIOR_RESULT_MAX_CHARS]}" for step_id, output in sibling_results]
    return "PRIOR STEPS ALREADY COMPLETED (use this context, do NOT redo these):\n" + "\n".join(lines)


def build_step_prompt(
    *,
    task: str,
    parent_task: Optional[str],
    sibling_results: Sequence[Tuple[str, str]],
    history: Sequence[str],
    tool_results: Sequence[ToolInvocationResult],
    remaining_calls: int,
    shared_context: str = "",
    working_set: str = "",
    stuck_warning: Optional[str] = None,
    soft_warning: Optional[str] = None,
    compaction_notice: str = "",
) -> str:
    """User prompt for one decide step."""
    sections: List[str] = [f"TASK: {task}"]
    if parent_task:
        sections.append(f'ORIGINAL USER REQUEST: "{parent_task[:PARENT_TASK_MAX_CHARS]}"')
    if history:
        sections.append("CONVERSATION SO FAR:\n" + "\n".join(history))
    prior = format_prior_results(sibling_results)
    if prior:
        sections.append(prior)
    if shared_context:
        sections.append(shared_context)
    if compaction_notice:
        sections.append(compaction_notice)
    if working_set:
        sections.append(working_set)

    if tool_results:
        count = len(tool_results)
        sections.append(
            f"== TOOL HISTORY ({count} step{'s' if count > 1 else ''} so far) ==\n"
            + format_tool_history(tool_results)
        )

    instructions = [f"You have {remaining_calls} tool calls remaining."]
    if stuck_warning:
        instructions.append(f"WARNING: {stuck_warning} Change your approach or finish now.")
    if soft_warning:
        instructions.append(soft_warning)
    if not tool_results:
        instructions.append(
            "Respond with a JSON tool call to begin working on this task. "
            "Do NOT respond with text. You MUST output a JSON object."
        )
    elif tool_results[-1].success:
        instructions.append(
            "The last tool call succeeded. Analyze the result:\n"
            '- If the task is FULLY complete, respond with: { "done": true, "summary": "your answer" }\n'
            "- If the task is NOT complete, call another tool NOW. Do NOT ask the user anything."
        )
    else:
        instructions.append(
            "The last tool call FAILED. Do NOT give up. Try a DIFFERENT approach immediately:\n"
            "- Different tool, different path, different command.\n"
            "Respond with a new tool call JSON."
        )
    sections.append("== INSTRUCTIONS ==\n" + "\n".join(instructions))
    return "\n\n".join(sections)


def build_correction_prompt(task: str, tool_results: Sequence[ToolInvocationResult], raw_response: str) -> str:
    sections = [f"TASK: {task}"]
    if tool_results:
        sections.append("== TOOL HISTORY ==\n" + format_tool_history(tool_results, CORRECTION_HISTORY_MAX_CHARS))
    sections.append(
        "== ERROR: INVALID RESPONSE FORMAT ==\n"
        "Your last response was not a valid tool call or completion signal.\n"
        f"You responded with: {raw_response[:200]}\n\n"
        + JSON_FORMATS_REMINDER
    )
    return "\n\n".join(sections)


def build_final_summary_prompt(task: str, tool_results: Sequence[ToolInvocationResult], steps: int) -> str:
    lines = [
        f"{r.tool_key} -> {'SUCCESS' if r.success else 'FAILED'}: {r.content[:SUMMARY_RESULT_MAX_CHARS]}"
        for r in tool_results
    ]
    body = "\n".join(f"Step {i}: {line}" for i, line in enumerate(lines, 1)) or "No tool calls were made."
    return (
        f"Original task: {task}\n\n"
        f"You used {steps} step(s). Here's what happened:\n{body}\n\n"
        "Provide a final summary of what was accomplished and what remains incomplete."
    )


def build_local_summary(stop_reason: str, tool_results: Sequence[ToolInvocationResult]) -> str:
    """Summary assembled without a model call."""
    if not tool_results:
        return f"{stop_reason}. No tool calls completed."
    last = tool_results[-2:]
    details = "\n".join(f"{r.tool_key}: {r.content[:SUMMARY_RESULT_MAX_CHARS]}" for r in last)
    succeeded = sum(1 for r in tool_results if r.success)
    return (
        f"{stop_reason}. Completed {len(tool_results)} tool call(s), {succeeded} succeeded. "
        f"Last results:\n{details}"
    )
