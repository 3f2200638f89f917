"""Environment-bound configuration objects.

All settings groups load from environment variables (and a local ``.env``
file) through Pydantic BaseSettings. Several env names are accepted for the
same field where older deployments used different spellings.

Example:
    from taskAgent.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    ceiling = settings.loop.absolute_max_steps
    threshold = settings.context.compaction_threshold
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


class ModelSettings(BaseSettings):
    """Reasoning engine endpoint and sampling defaults.

    Accepted env names:
    - MODEL_ID, MODEL_NAME (model identifier)
    - MODEL_API_KEY, OPENAI_API_KEY
    - MODEL_BASE_URL, OPENAI_BASE_URL
    """

    model_id: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("MODEL_ID", "MODEL_NAME"),
    )
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_API_KEY", "OPENAI_API_KEY"),
    )
    base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_BASE_URL", "OPENAI_BASE_URL"),
    )
    temperature: float = Field(default=0.1, ge=0.0, le=2.0, alias="MODEL_TEMPERATURE")
    max_tokens: Optional[int] = Field(default=None, alias="MODEL_MAX_TOKENS")
    # Overrides the built-in context limit table when set
    context_window: Optional[int] = Field(default=None, alias="MODEL_CONTEXT_WINDOW")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )


class LoopSettings(BaseSettings):
    """Limits applied to every orchestration loop run."""

    absolute_max_steps: int = Field(default=100, ge=1, le=500, alias="LOOP_MAX_STEPS")
    soft_warning_step: int = Field(default=50, ge=1, alias="LOOP_SOFT_WARNING_STEP")
    max_corrections: int = Field(default=2, ge=0, le=10, alias="LOOP_MAX_CORRECTIONS")
    max_loop_repeats: int = Field(default=3, ge=2, alias="LOOP_MAX_REPEATS")
    max_tool_frequency: int = Field(default=8, ge=1, alias="LOOP_MAX_TOOL_FREQUENCY")
    max_read_tool_frequency: int = Field(default=30, ge=1, alias="LOOP_MAX_READ_TOOL_FREQUENCY")
    max_consecutive_same: int = Field(default=5, ge=2, alias="LOOP_MAX_CONSECUTIVE_SAME")
    default_timeout_seconds: float = Field(default=300.0, gt=0, alias="LOOP_TIMEOUT_SECONDS")
    max_delegation_depth: int = Field(
        default=2,
        validation_alias=AliasChoices("MAX_DELEGATION_DEPTH", "LOOP_MAX_DELEGATION_DEPTH"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ContextSettings(BaseSettings):
    """Token budget and compaction knobs."""

    compaction_threshold: float = Field(default=0.80, gt=0, le=1.0, alias="CONTEXT_COMPACTION_THRESHOLD")
    proactive_threshold: float = Field(default=0.60, gt=0, le=1.0, alias="CONTEXT_PROACTIVE_THRESHOLD")
    keep_recent_actions: int = Field(default=6, ge=1, alias="CONTEXT_KEEP_RECENT_ACTIONS")
    keep_recent_files: int = Field(default=4, ge=0, alias="CONTEXT_KEEP_RECENT_FILES")
    truncated_file_max_lines: int = Field(default=100, ge=10, alias="CONTEXT_TRUNCATED_FILE_LINES")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class MCPSettings(BaseSettings):
    """External tool-server client configuration."""

    config_path: Optional[str] = Field(default=None, alias="MCP_CONFIG_PATH")
    reconnect_base_delay: float = Field(default=1.0, gt=0, alias="MCP_RECONNECT_BASE_DELAY")
    max_reconnect_attempts: int = Field(default=5, ge=1, le=20, alias="MCP_MAX_RECONNECT_ATTEMPTS")
    connect_timeout: float = Field(default=30.0, gt=0, alias="MCP_CONNECT_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ObservabilitySettings(BaseSettings):
    """Logging configuration."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="logs", alias="LOG_DIR")
    log_prompt_max_length: int = Field(default=500, ge=100, le=5000, alias="LOG_PROMPT_MAX_LENGTH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class Settings(BaseSettings):
    """Root application settings.

    Groups:
    - model: reasoning engine endpoint (ModelSettings)
    - loop: orchestration loop limits (LoopSettings)
    - context: token budget and compaction (ContextSettings)
    - mcp: tool-server client (MCPSettings)
    - observability: logging (ObservabilitySettings)

    Paths to the YAML rule files default to the copies shipped in this package.
    """

    safety_rules_path: Optional[str] = Field(default=None, alias="SAFETY_RULES_PATH")
    permissions_path: Optional[str] = Field(default=None, alias="PERMISSIONS_PATH")
    model: ModelSettings = Field(default_factory=ModelSettings)
    loop: LoopSettings = Field(default_factory=LoopSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)
    mcp: MCPSettings = Field(default_factory=MCPSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        case_sensitive=False,
        protected_namespaces=(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    return Settings()


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
