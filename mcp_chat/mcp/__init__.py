"""MCP (Model Context Protocol) integration module.

This module provides the connection registry, transport adapters and
result normalization used to reach MCP servers.
"""
from .models import (
    ServerStatus,
    ToolCallStatus,
    ConnectionState,
    MCPTool,
    MCPPrompt,
    MCPPromptArgument,
    MCPResource,
    BinaryItem,
    CallResult,
    UploadedImage,
    ToolCallRecord,
)
from .config import (
    TOOL_NAME_SEPARATOR,
    TransportKind,
    ConfigError,
    MCPServerConfig,
    MCPConfigManager,
    validate_config,
)
from .transport import (
    MCPTransportError,
    UnsupportedTransportError,
    MissingParameterError,
    create_transport,
)
from .client import MCPClient, MCPConnectionError, MCPNotConnectedError
from .client_manager import MCPClientManager
from .normalizer import normalize_call_result
from .tool_adapter import (
    ToolCatalog,
    ToolResolutionError,
    ToolRoute,
    build_tool_catalog,
    prefix_tool_name,
    split_tool_name,
)

__all__ = [
    # Models
    "ServerStatus",
    "ToolCallStatus",
    "ConnectionState",
    "MCPTool",
    "MCPPrompt",
    "MCPPromptArgument",
    "MCPResource",
    "BinaryItem",
    "CallResult",
    "UploadedImage",
    "ToolCallRecord",
    # Config
    "TOOL_NAME_SEPARATOR",
    "TransportKind",
    "ConfigError",
    "MCPServerConfig",
    "MCPConfigManager",
    "validate_config",
    # Transport
    "MCPTransportError",
    "UnsupportedTransportError",
    "MissingParameterError",
    "create_transport",
    # Client
    "MCPClient",
    "MCPConnectionError",
    "MCPNotConnectedError",
    "MCPClientManager",
    # Results
    "normalize_call_result",
    # Adapter
    "ToolCatalog",
    "ToolResolutionError",
    "ToolRoute",
    "build_tool_catalog",
    "prefix_tool_name",
    "split_tool_name",
]
