"""Tests for the Permission Gate."""

import pytest

from taskAgent.core.models import ToolDefinition
from taskAgent.safety.permissions import (
    PermissionConfig,
    PermissionGate,
    PermissionTier,
    ToolClass,
    authorize,
    classify_local_tool,
    load_role_permissions,
)


def _config(tier, allow=None, block=()):
    return PermissionConfig(
        tier=tier,
        allow_list=frozenset(allow) if allow is not None else None,
        block_list=frozenset(block),
    )


class TestAuthorize:
    """Resolution order of the pure authorize function."""

    def test_none_tier_denies_everything(self):
        decision = authorize(_config(PermissionTier.NONE), "writer", "local::file_read")
        assert not decision.allowed
        assert "no tool access" in decision.reason

    def test_full_tier_allows_everything(self):
        config = _config(PermissionTier.FULL, block=["shell_execute"])
        assert authorize(config, "executor", "local::shell_execute").allowed

    def test_external_tools_skip_local_classification(self):
        config = _config(PermissionTier.READ, allow=["file_read"])
        assert authorize(config, "researcher", "search::web_search").allowed

    def test_block_list_wins_over_allow_list(self):
        config = _config(PermissionTier.READ_WRITE, allow=["file_write"], block=["file_write"])
        decision = authorize(config, "coder", "local::file_write")
        assert not decision.allowed
        assert "explicitly blocked" in decision.reason

    def test_allow_list_restricts(self):
        config = _config(PermissionTier.READ, allow=["file_read"])
        assert authorize(config, "researcher", "local::file_read").allowed
        decision = authorize(config, "researcher", "local::directory_list")
        assert not decision.allowed
        assert "allow-list" in decision.reason

    def test_read_tier_ceiling(self):
        config = _config(PermissionTier.READ)
        assert authorize(config, "reviewer", "local::directory_list").allowed
        decision = authorize(config, "reviewer", "local::file_write")
        assert not decision.allowed
        assert "write-level" in decision.reason

    def test_read_write_tier_denies_execute(self):
        config = _config(PermissionTier.READ_WRITE)
        assert authorize(config, "coder", "local::file_delete").allowed
        assert not authorize(config, "coder", "local::shell_execute").allowed

    def test_unknown_local_tool_is_execute_class(self):
        assert classify_local_tool("mystery") == ToolClass.EXECUTE
        assert classify_local_tool("file_read") == ToolClass.READ
        assert classify_local_tool("file_move") == ToolClass.WRITE

    def test_pure_function(self):
        config = _config(PermissionTier.READ)
        first = authorize(config, "analyst", "local::file_write")
        second = authorize(config, "analyst", "local::file_write")
        assert first == second


TIERS_DESCENDING = [PermissionTier.FULL, PermissionTier.READ_WRITE, PermissionTier.READ, PermissionTier.NONE]


class TestTierOrdering:
    """full > readWrite > read > none for every tool class."""

    @pytest.mark.parametrize("tool_key, expected", [
        ("local::file_read", [True, True, True, False]),
        ("local::file_write", [True, True, False, False]),
        ("local::shell_execute", [True, False, False, False]),
    ])
    def test_higher_tier_never_loses_access(self, tool_key, expected):
        allowed = [authorize(_config(tier), "agent", tool_key).allowed for tier in TIERS_DESCENDING]
        assert allowed == expected
        for higher, lower in zip(allowed, allowed[1:]):
            assert higher or not lower

    def test_read_tier_shell_denial_names_tier_and_tool(self):
        decision = authorize(_config(PermissionTier.READ), "researcher", "local::shell_execute")
        assert not decision.allowed
        assert "read" in decision.reason
        assert "shell_execute" in decision.reason

        default = PermissionGate().authorize("researcher", "local::shell_execute")
        assert not default.allowed
        assert "read" in default.reason
        assert "shell_execute" in default.reason


class TestPermissionGate:
    """Role lookup, filtering and YAML overrides."""

    def test_unknown_role_has_no_access(self):
        gate = PermissionGate()
        assert not gate.has_tool_access("ghost")
        assert not gate.authorize("ghost", "local::file_read").allowed

    def test_default_profiles(self):
        gate = PermissionGate()
        assert gate.authorize("executor", "local::shell_execute").allowed
        assert not gate.authorize("coder", "local::shell_execute").allowed
        assert not gate.authorize("writer", "local::file_read").allowed

    def test_filter_tools(self):
        gate = PermissionGate()
        tools = [
            ToolDefinition(key="local::file_read"),
            ToolDefinition(key="local::file_write"),
            ToolDefinition(key="local::shell_execute"),
            ToolDefinition(key="search::web_search"),
        ]
        visible = [tool.key for tool in gate.filter_tools("reviewer", tools)]
        assert visible == ["local::file_read", "search::web_search"]
        assert gate.filter_tools("planner", tools) == []
        assert len(gate.filter_tools("executor", tools)) == 4

    def test_yaml_overrides_and_adds_roles(self, write_yaml):
        path = write_yaml("permissions.yaml", {
            "roles": {
                "writer": {"tier": "read", "max_steps": 10},
                "auditor": {"tier": "read", "allow_list": ["file_read"], "timeout_ms": 60000},
            }
        })
        roles = load_role_permissions(path)
        assert roles["writer"].tier == PermissionTier.READ
        assert roles["writer"].max_steps == 10
        assert roles["auditor"].timeout_ms == 60000
        assert "executor" in roles

        gate = PermissionGate.from_config(path)
        assert gate.authorize("auditor", "local::file_read").allowed
        assert not gate.authorize("auditor", "local::directory_list").allowed

    def test_missing_file_uses_defaults(self, tmp_path):
        roles = load_role_permissions(tmp_path / "none.yaml")
        assert roles["executor"].tier == PermissionTier.FULL
