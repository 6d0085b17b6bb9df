"""MCP server configuration management.

This module defines server definitions and persists them in a JSON
file. Definitions are validated on load; invalid entries are logged
and skipped.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0"

# Joins a server id and a tool name in names exposed to the model.
TOOL_NAME_SEPARATOR = "__"

# Ids become part of model function names, which allow only [A-Za-z0-9_-].
# Single underscores are allowed; the separator and a trailing '_' are not.
SERVER_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]+(_[A-Za-z0-9-]+)*$")
MAX_SERVER_ID_LENGTH = 32


class TransportKind(Enum):
    """Channel type used to reach a server."""
    
    STDIO = "stdio"
    STREAMABLE_HTTP = "streamable-http"
    SSE = "sse"


class ConfigError(Exception):
    """Raised when a server definition is invalid or conflicts."""


@dataclass(frozen=True)
class MCPServerConfig:
    """Configuration for a single MCP server; immutable once built.
    
    Attributes:
        id: Unique identifier for this server.
        name: Display name.
        transport: Transport kind, as its wire string (stdio, streamable-http, sse).
        command: Command to run the server (stdio only).
        args: Command line arguments (stdio only).
        env: Extra environment variables (stdio only).
        url: Endpoint URL (streamable-http and sse).
        timeout: Optional handshake timeout override in seconds.
    """
    
    id: str
    name: str
    transport: str
    command: Optional[str] = None
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    url: Optional[str] = None
    timeout: Optional[float] = None
    
    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "MCPServerConfig":
        """Build a config from its JSON form, raising ConfigError if invalid."""
        errors = validate_config(raw)
        if errors:
            raise ConfigError(", ".join(errors))
        return cls(
            id=raw["id"],
            name=raw.get("name") or raw["id"],
            transport=raw["transport"],
            command=raw.get("command"),
            args=list(raw.get("args") or []),
            env=dict(raw.get("env") or {}),
            url=raw.get("url"),
            timeout=raw.get("timeout"),
        )
    
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "transport": self.transport,
        }
        if self.command is not None:
            data["command"] = self.command
        if self.args:
            data["args"] = list(self.args)
        if self.env:
            data["env"] = dict(self.env)
        if self.url is not None:
            data["url"] = self.url
        if self.timeout is not None:
            data["timeout"] = self.timeout
        return data


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate a raw server definition.
    
    Only structure is checked here. Whether the transport kind is
    supported and its required parameters are present is decided when
    the transport is built, so that the registry reports it.
    
    Args:
        config: Raw configuration dictionary to validate.
        
    Returns:
        List of validation error messages. Empty if valid.
    """
    errors = []
    
    server_id = config.get("id")
    if not isinstance(server_id, str) or not server_id.strip():
        errors.append("Field 'id' must be a non-empty string")
    elif len(server_id) > MAX_SERVER_ID_LENGTH:
        errors.append(f"Field 'id' must be at most {MAX_SERVER_ID_LENGTH} characters")
    elif not SERVER_ID_PATTERN.fullmatch(server_id):
        errors.append(
            "Field 'id' may only contain letters, digits and '-', "
            "joined by single '_'"
        )
    
    if "name" in config and config["name"] is not None and not isinstance(config["name"], str):
        errors.append("Field 'name' must be a string")
    
    if not isinstance(config.get("transport"), str):
        errors.append("Field 'transport' must be a string")
    
    if config.get("command") is not None and not isinstance(config["command"], str):
        errors.append("Field 'command' must be a string")
    
    if config.get("args") is not None:
        if not isinstance(config["args"], list):
            errors.append("Field 'args' must be a list")
        elif not all(isinstance(arg, str) for arg in config["args"]):
            errors.append("All items in 'args' must be strings")
    
    if config.get("env") is not None:
        if not isinstance(config["env"], dict):
            errors.append("Field 'env' must be a dictionary")
        elif not all(
            isinstance(k, str) and isinstance(v, str)
            for k, v in config["env"].items()
        ):
            errors.append("All keys and values in 'env' must be strings")
    
    if config.get("url") is not None and not isinstance(config["url"], str):
        errors.append("Field 'url' must be a string")
    
    if config.get("timeout") is not None:
        if isinstance(config["timeout"], bool) or not isinstance(config["timeout"], (int, float)):
            errors.append("Field 'timeout' must be a number")
        elif config["timeout"] <= 0:
            errors.append("Field 'timeout' must be positive")
    
    return errors


class MCPConfigManager:
    """Manager for MCP server configurations.
    
    Keeps server definitions in memory, ordered as added, and writes
    them back to the JSON file on every change.
    
    Attributes:
        config_path: Path to the configuration file.
        configs: Dictionary mapping server IDs to their configurations.
    """
    
    def __init__(self, config_path: str):
        self.config_path = Path(config_path)
        self.configs: Dict[str, MCPServerConfig] = {}
    
    def load_config(self) -> Dict[str, MCPServerConfig]:
        """Load and parse the configuration file.
        
        Returns:
            Dictionary mapping server IDs to MCPServerConfig objects.
            If the file doesn't exist or is unreadable, an empty dict.
        """
        self.configs = {}
        
        if not self.config_path.exists():
            logger.warning(f"MCP config file not found: {self.config_path}")
            return self.configs
        
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                raw_config = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in MCP config file: {e}")
            return self.configs
        except OSError as e:
            logger.error(f"Error reading MCP config file: {e}")
            return self.configs
        
        for raw in raw_config.get("servers", []):
            try:
                config = MCPServerConfig.from_dict(raw)
            except ConfigError as e:
                logger.error(f"Invalid config for server '{raw.get('id')}': {e}")
                continue
            self.configs[config.id] = config
        
        logger.info(f"Loaded {len(self.configs)} MCP server configurations")
        return self.configs
    
    def save_config(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": CONFIG_VERSION,
            "servers": [c.to_dict() for c in self.configs.values()],
        }
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
    
    def list_configs(self) -> List[MCPServerConfig]:
        return list(self.configs.values())
    
    def get_config(self, server_id: str) -> Optional[MCPServerConfig]:
        """Get configuration for a specific server, or None if not found."""
        return self.configs.get(server_id)
    
    def add_config(self, config: MCPServerConfig) -> List[MCPServerConfig]:
        if config.id in self.configs:
            raise ConfigError(f'Server with id "{config.id}" already exists')
        self.configs[config.id] = config
        self.save_config()
        logger.info(f"Added MCP server config '{config.id}'")
        return self.list_configs()
    
    def update_config(self, config: MCPServerConfig) -> List[MCPServerConfig]:
        if config.id not in self.configs:
            raise KeyError(config.id)
        self.configs[config.id] = config
        self.save_config()
        logger.info(f"Updated MCP server config '{config.id}'")
        return self.list_configs()
    
    def remove_config(self, server_id: str) -> List[MCPServerConfig]:
        if self.configs.pop(server_id, None) is not None:
            self.save_config()
            logger.info(f"Removed MCP server config '{server_id}'")
        return self.list_configs()
    
    def export_config(self) -> Dict[str, Any]:
        return {
            "version": CONFIG_VERSION,
            "servers": [c.to_dict() for c in self.configs.values()],
            "exportedAt": datetime.now(timezone.utc).isoformat(),
        }
    
    def import_config(self, payload: Dict[str, Any], merge: bool = False) -> List[MCPServerConfig]:
        """Import an exported configuration.
        
        Args:
            payload: A dict shaped like the output of export_config().
            merge: Keep existing servers and add only imported servers
                whose ids are new, instead of replacing the whole set.
        
        Raises:
            ConfigError: If the payload or any server in it is invalid.
        """
        servers = payload.get("servers")
        if not payload.get("version") or not isinstance(servers, list):
            raise ConfigError("Invalid config format: 'version' and a 'servers' list are required")
        
        imported = [MCPServerConfig.from_dict(raw) for raw in servers]
        
        if merge:
            added = [c for c in imported if c.id not in self.configs]
            skipped = len(imported) - len(added)
        else:
            self.configs = {}
            added, skipped = imported, 0
        for config in added:
            self.configs[config.id] = config
        
        self.save_config()
        logger.info(
            f"Imported {len(added)} MCP server configs "
            f"(merge={merge}, skipped {skipped} existing)"
        )
        return self.list_configs()
