"""Which roles may hand sub-tasks to which, and how deep."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from taskAgent.core.models import ToolDefinition, make_tool_key, LOCAL_SERVER_ID, split_tool_key

DELEGATION_TOOL_NAME = "delegate_to_agent"
DELEGATION_TOOL_KEY = make_tool_key(LOCAL_SERVER_ID, DELEGATION_TOOL_NAME)

MIN_DELEGATION_DEPTH = 1
MAX_DELEGATION_DEPTH_LIMIT = 5

DELEGATION_RULES: Dict[str, Tuple[str, ...]] = {
    "executor": ("researcher", "coder", "reviewer", "writer", "analyst", "critic"),
    "coder": ("researcher", "reviewer"),
    "researcher": ("coder",),
    "reviewer": ("researcher", "coder"),
    "analyst": ("researcher",),
}

TARGET_DESCRIPTIONS = {
    "researcher": "web search, fact-finding, data gathering",
    "coder": "code reading, writing, analysis",
    "reviewer": "code review, quality checks",
    "writer": "drafting text, documentation, creative writing",
    "analyst": "data analysis, pattern recognition",
    "critic": "critical evaluation, argument analysis",
    "executor": "full system access, shell commands",
}


@dataclass(frozen=True)
class DelegationDecision:
    allowed: bool
    reason: str = ""


def clamp_depth(depth: int) -> int:
    return max(MIN_DELEGATION_DEPTH, min(depth, MAX_DELEGATION_DEPTH_LIMIT))


def is_delegation_tool(tool_key: str) -> bool:
    server_id, name = split_tool_key(tool_key)
    return name == DELEGATION_TOOL_NAME and server_id == LOCAL_SERVER_ID


def delegation_targets(role: str) -> List[str]:
    return list(DELEGATION_RULES.get(role, ()))


def can_delegate(delegator: str, target: str) -> DelegationDecision:
    if delegator == target:
        return DelegationDecision(False, f'Agent "{delegator}" cannot delegate to itself')
    allowed = DELEGATION_RULES.get(delegator)
    if not allowed:
        return DelegationDecision(False, f'Agent "{delegator}" is not permitted to delegate to other agents')
    if target not in allowed:
        return DelegationDecision(
            False,
            f'Agent "{delegator}" cannot delegate to "{target}". Allowed targets: {", ".join(allowed)}',
        )
    return DelegationDecision(True)


def can_delegate_at_depth(current_depth: int, max_depth: int) -> bool:
    return current_depth < clamp_depth(max_depth)


def delegation_tool_definition(role: str) -> Optional[ToolDefinition]:
    """Tool entry offered to roles that have delegation targets."""
    targets = delegation_targets(role)
    if not targets:
        return None
    listing = "; ".join(f'"{t}": {TARGET_DESCRIPTIONS.get(t, t)}' for t in targets)
    return ToolDefinition(
        key=DELEGATION_TOOL_KEY,
        description=(
            "Delegate a sub-task to another specialist agent and get their result. "
            f"Available agents: {listing}"
        ),
        input_schema={
            "type": "object",
            "properties": {
                "agent": {"type": "string", "enum": targets},
                "task": {"type": "string", "description": "Detailed sub-task description"},
            },
            "required": ["agent", "task"],
        },
    )
