"""Permission Gate: per-role tool access profiles.

``authorize`` is a pure function of (role config, tool key). Local tools are
keyed ``local::<name>`` and classified read/write/execute against the role's
tier. Tools from external servers are allowed for any tier that has tool
access; their trust boundary is the remote service, not the local OS.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar

import yaml

from taskAgent.config.project_root import default_config_file
from taskAgent.core.models import KEY_SEPARATOR, LOCAL_SERVER_ID

LOGGER = logging.getLogger(__name__)

LOCAL_PREFIX = f"{LOCAL_SERVER_ID}{KEY_SEPARATOR}"


class PermissionTier(str, Enum):
    FULL = "full"
    READ_WRITE = "readWrite"
    READ = "read"
    NONE = "none"


class ToolClass(str, Enum):
    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"


READ_TOOLS = frozenset({
    "file_read", "directory_list", "web_search", "webpage_fetch",
    "http_request", "send_notification",
})
WRITE_TOOLS = frozenset({"file_write", "file_create", "file_delete", "file_move"})


@dataclass(frozen=True)
class PermissionConfig:
    tier: PermissionTier
    allow_list: Optional[frozenset] = None
    block_list: frozenset = field(default_factory=frozenset)
    max_steps: Optional[int] = None
    timeout_ms: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "PermissionConfig":
        allow = data.get("allow_list")
        return cls(
            tier=PermissionTier(data.get("tier", "none")),
            allow_list=frozenset(allow) if allow is not None else None,
            block_list=frozenset(data.get("block_list") or ()),
            max_steps=data.get("max_steps"),
            timeout_ms=data.get("timeout_ms"),
        )


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: str = ""


NO_ACCESS = PermissionConfig(tier=PermissionTier.NONE)

DEFAULT_ROLE_PERMISSIONS: Dict[str, PermissionConfig] = {
    "executor": PermissionConfig(tier=PermissionTier.FULL, timeout_ms=10 * 60 * 1000),
    "researcher": PermissionConfig(
        tier=PermissionTier.READ,
        allow_list=frozenset({"web_search", "webpage_fetch", "file_read", "directory_list", "http_request"}),
        timeout_ms=5 * 60 * 1000,
    ),
    "coder": PermissionConfig(
        tier=PermissionTier.READ_WRITE,
        allow_list=frozenset({
            "file_read", "file_write", "file_create", "directory_list", "web_search", "webpage_fetch",
        }),
        block_list=frozenset({"shell_execute", "file_delete"}),
        timeout_ms=5 * 60 * 1000,
    ),
    "reviewer": PermissionConfig(tier=PermissionTier.READ, timeout_ms=3 * 60 * 1000),
    "analyst": PermissionConfig(tier=PermissionTier.READ, timeout_ms=3 * 60 * 1000),
    "critic": PermissionConfig(
        tier=PermissionTier.READ,
        allow_list=frozenset({"web_search", "webpage_fetch"}),
        timeout_ms=2 * 60 * 1000,
    ),
    # Pure reasoning roles never call tools
    "writer": NO_ACCESS,
    "planner": NO_ACCESS,
    "reflection": NO_ACCESS,
    "orchestrator": NO_ACCESS,
}


def classify_local_tool(tool_name: str) -> ToolClass:
    if tool_name in READ_TOOLS:
        return ToolClass.READ
    if tool_name in WRITE_TOOLS:
        return ToolClass.WRITE
    return ToolClass.EXECUTE


def authorize(config: PermissionConfig, role: str, tool_key: str) -> PermissionDecision:
    """Decide whether ``role`` (with ``config``) may call ``tool_key``."""
    if config.tier == PermissionTier.NONE:
        return PermissionDecision(False, f'Agent "{role}" has no tool access (tier: none)')
    if config.tier == PermissionTier.FULL:
        return PermissionDecision(True)

    is_local = tool_key.startswith(LOCAL_PREFIX)
    tool_name = tool_key[len(LOCAL_PREFIX):] if is_local else tool_key

    if not is_local:
        # External service calls; lists hold local tool names only
        return PermissionDecision(True)

    if tool_name in config.block_list:
        return PermissionDecision(
            False,
            f'Tool "{tool_name}" is explicitly blocked for agent "{role}" (tier: {config.tier.value})',
        )

    if config.allow_list is not None:
        if tool_name not in config.allow_list:
            return PermissionDecision(
                False,
                f'Tool "{tool_name}" is not in the allow-list for agent "{role}" (tier: {config.tier.value})',
            )
        return PermissionDecision(True)

    tool_class = classify_local_tool(tool_name)
    if config.tier == PermissionTier.READ and tool_class != ToolClass.READ:
        return PermissionDecision(
            False,
            f'Agent "{role}" (tier: read) cannot use {tool_class.value}-level tool "{tool_name}"',
        )
    if config.tier == PermissionTier.READ_WRITE and tool_class == ToolClass.EXECUTE:
        return PermissionDecision(
            False,
            f'Agent "{role}" (tier: readWrite) cannot use execute-level tool "{tool_name}"',
        )
    return PermissionDecision(True)


def load_role_permissions(config_path: Optional[Path] = None) -> Dict[str, PermissionConfig]:
    """Built-in role profiles overlaid with the entries of a permissions YAML file."""
    roles = dict(DEFAULT_ROLE_PERMISSIONS)
    path = Path(config_path) if config_path else default_config_file("permissions.yaml")
    if not path.exists():
        LOGGER.debug(f"No permissions file at {path}, using built-in role profiles")
        return roles
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    for role, entry in (data.get("roles") or {}).items():
        roles[role] = PermissionConfig.from_dict(entry or {})
    return roles


T = TypeVar("T")


class PermissionGate:
    """Holds role profiles and answers authorization questions."""

    def __init__(self, roles: Optional[Dict[str, PermissionConfig]] = None):
        self._roles = dict(roles) if roles is not None else dict(DEFAULT_ROLE_PERMISSIONS)

    @classmethod
    def from_config(cls, config_path: Optional[Path] = None) -> "PermissionGate":
        return cls(load_role_permissions(config_path))

    def config_for(self, role: str) -> PermissionConfig:
        """Profile for a role; unknown roles get no access."""
        return self._roles.get(role, NO_ACCESS)

    def authorize(self, role: str, tool_key: str) -> PermissionDecision:
        decision = authorize(self.config_for(role), role, tool_key)
        if not decision.allowed:
            LOGGER.info(f"Permission denied: {decision.reason}")
        return decision

    def filter_tools(self, role: str, tools: Iterable[T], key_of=lambda tool: tool.key) -> List[T]:
        """Subset of ``tools`` the role may call."""
        config = self.config_for(role)
        if config.tier == PermissionTier.NONE:
            return []
        tools = list(tools)
        if config.tier == PermissionTier.FULL:
            return tools
        return [tool for tool in tools if authorize(config, role, key_of(tool)).allowed]

    def has_tool_access(self, role: str) -> bool:
        return self.config_for(role).tier != PermissionTier.NONE

    @property
    def roles(self) -> Sequence[str]:
        return sorted(self._roles)
