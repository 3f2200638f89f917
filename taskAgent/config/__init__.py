"""Configuration helpers for taskAgent."""

from .project_root import default_config_file, get_project_root, resolve_project_path
from .settings import (
    ContextSettings,
    LoopSettings,
    MCPSettings,
    ModelSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "ContextSettings",
    "LoopSettings",
    "MCPSettings",
    "ModelSettings",
    "ObservabilitySettings",
    "Settings",
    "default_config_file",
    "get_project_root",
    "get_settings",
    "reset_settings",
    "resolve_project_path",
]
