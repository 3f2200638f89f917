"""Safety and permission gates."""

from .gate import (
    SafetyAction,
    SafetyGate,
    SafetyRules,
    SafetyVerdict,
    load_safety_rules,
)
from .permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    PermissionConfig,
    PermissionDecision,
    PermissionGate,
    PermissionTier,
    ToolClass,
    authorize,
    classify_local_tool,
    load_role_permissions,
)

__all__ = [
    "DEFAULT_ROLE_PERMISSIONS",
    "PermissionConfig",
    "PermissionDecision",
    "PermissionGate",
    "PermissionTier",
    "SafetyAction",
    "SafetyGate",
    "SafetyRules",
    "SafetyVerdict",
    "ToolClass",
    "authorize",
    "classify_local_tool",
    "load_role_permissions",
    "load_safety_rules",
]
