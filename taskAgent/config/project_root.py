"""Project root path detection - works regardless of working directory."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

CONFIG_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=1)
def get_project_root() -> Path:
    """Return the directory that contains the ``taskAgent`` package."""
    project_root = CONFIG_DIR.parent.parent
    if not (project_root / "taskAgent").exists():
        raise RuntimeError(
            f"Could not locate project root. Expected 'taskAgent' directory at {project_root}"
        )
    return project_root


def resolve_project_path(relative_path: str | Path) -> Path:
    """Resolve a path relative to the project root (absolute paths pass through)."""
    path = Path(relative_path)
    if path.is_absolute():
        return path
    return get_project_root() / path


def default_config_file(name: str) -> Path:
    """Path of a YAML file shipped in ``taskAgent/config``."""
    return CONFIG_DIR / name


__all__ = ["CONFIG_DIR", "default_config_file", "get_project_root", "resolve_project_path"]
