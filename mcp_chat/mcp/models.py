"""Data models for MCP integration.

This module defines the core data structures shared by the connection
registry, the result normalizer and the tool-calling orchestrator.
"""
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ServerStatus(Enum):
    """MCP server connection status."""
    
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ToolCallStatus(Enum):
    """Lifecycle of a single tool invocation inside a turn."""
    
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ConnectionState:
    """Current connection status of one server.
    
    Attributes:
        server_id: Identifier of the server.
        status: Current connection status.
        error: Error message when status is ERROR.
        connected_at: Epoch milliseconds of the successful handshake.
    """
    
    server_id: str
    status: ServerStatus = ServerStatus.DISCONNECTED
    error: Optional[str] = None
    connected_at: Optional[int] = None
    
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "serverId": self.server_id,
            "status": self.status.value,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.connected_at is not None:
            data["connectedAt"] = self.connected_at
        return data


@dataclass
class MCPTool:
    """MCP tool definition.
    
    Represents a tool discovered from an MCP server.
    
    Attributes:
        name: The tool's name on its server.
        description: Human-readable description of what the tool does.
        input_schema: JSON Schema defining the tool's input parameters.
    """
    
    name: str
    description: Optional[str] = None
    input_schema: Optional[Dict[str, Any]] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass
class MCPPromptArgument:
    name: str
    description: Optional[str] = None
    required: Optional[bool] = None


@dataclass
class MCPPrompt:
    """Prompt template exposed by a server."""
    
    name: str
    description: Optional[str] = None
    arguments: Optional[List[MCPPromptArgument]] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MCPResource:
    """Addressable resource exposed by a server."""
    
    uri: str
    name: Optional[str] = None
    description: Optional[str] = None
    mime_type: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass
class BinaryItem:
    """Inline binary content block: base64 payload and its MIME type."""
    
    data: str
    mime_type: str = "image/png"


@dataclass
class CallResult:
    """Normalized outcome of one tool invocation.
    
    Attributes:
        text_content: All text blocks joined by newlines ("" when none).
        binary_items: Binary blocks in their original order.
        raw: The untouched protocol result, for the presentation layer.
    """
    
    text_content: str
    binary_items: List[BinaryItem] = field(default_factory=list)
    raw: Any = None


@dataclass
class UploadedImage:
    url: str
    mime_type: str
    
    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "mimeType": self.mime_type}


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ToolCallRecord:
    """One orchestration-visible tool invocation.
    
    Scoped to a single model turn; mutated in place as the call
    progresses.
    """
    
    id: str
    server_id: str
    server_name: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: Any = None
    error: Optional[str] = None
    images: List[UploadedImage] = field(default_factory=list)
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    
    def start(self) -> None:
        self.status = ToolCallStatus.EXECUTING
        self.started_at = now_ms()
    
    def complete(self, result: Any, images: Optional[List[UploadedImage]] = None) -> None:
        self.status = ToolCallStatus.COMPLETED
        self.result = result
        self.images = list(images or [])
        self.completed_at = now_ms()
    
    def fail(self, error: str) -> None:
        self.status = ToolCallStatus.ERROR
        self.error = error
        self.completed_at = now_ms()
