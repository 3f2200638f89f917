"""Tool-server configuration records and loading from YAML or JSON."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from taskAgent.utils.error_handler import ConfigurationError

LOGGER = logging.getLogger(__name__)

Transport = Literal["stdio", "sse", "streamable-http"]

TRANSPORT_ALIASES = {
    "stdio": "stdio",
    "sse": "sse",
    "http": "streamable-http",
    "streamable-http": "streamable-http",
    "streamableHttp": "streamable-http",
}


class MCPServerConfig(BaseModel):
    """One persisted tool-server record."""

    id: str
    name: str = ""
    transport: Transport = "stdio"
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    auto_connect: bool = Field(default=True, alias="autoConnect")
    enabled: bool = True
    auto_approve: List[str] = Field(default_factory=list, alias="autoApprove")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # VS Code style "type" key
        if "transport" not in data and "type" in data:
            data["transport"] = data.pop("type")
        if "transport" not in data:
            data["transport"] = "stdio" if data.get("command") else "streamable-http"
        data["transport"] = TRANSPORT_ALIASES.get(data["transport"], data["transport"])
        if not data.get("name"):
            data["name"] = data.get("id", "")
        return data

    @model_validator(mode="after")
    def _check_connection_details(self) -> "MCPServerConfig":
        if self.transport == "stdio" and not self.command:
            raise ValueError(f"server '{self.id}': stdio transport requires 'command'")
        if self.transport != "stdio" and not self.url:
            raise ValueError(f"server '{self.id}': {self.transport} transport requires 'url'")
        return self


def parse_server_configs(data: Union[Dict[str, Any], List[Any], None]) -> List[MCPServerConfig]:
    """Accept a ``servers``/``mcpServers`` map keyed by id, or a plain list of records."""
    if not data:
        return []

    if isinstance(data, dict):
        raw = data.get("servers", data.get("mcpServers"))
        if raw is None:
            raw = []
    else:
        raw = data

    records: List[Dict[str, Any]] = []
    if isinstance(raw, dict):
        for server_id, entry in raw.items():
            records.append({"id": server_id, **(entry or {})})
    elif isinstance(raw, list):
        records = [dict(entry) for entry in raw]
    else:
        raise ConfigurationError(f"Unsupported server configuration shape: {type(raw).__name__}")

    configs = []
    for record in records:
        try:
            configs.append(MCPServerConfig.model_validate(record))
        except ValidationError as e:
            LOGGER.warning(f"Skipping invalid MCP server config '{record.get('id')}': {e}")
    return configs


def load_server_configs(config_path: Path) -> List[MCPServerConfig]:
    """Load tool-server records from a ``.yaml``/``.yml`` or ``.json`` file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If the file cannot be parsed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"MCP config not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        text = f.read()
    try:
        if config_path.suffix.lower() == ".json":
            data = json.loads(text) if text.strip() else None
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid MCP config {config_path}: {e}") from e

    configs = parse_server_configs(data)
    LOGGER.info(f"Loaded {len(configs)} MCP server config(s) from {config_path}")
    return configs
