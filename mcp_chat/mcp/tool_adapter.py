"""MCP tool adapter for language-model function calling.

Tools from every connected server are exposed to the model under a
prefixed name, ``<server_id>__<tool_name>``. Server ids never contain
the separator and never end with ``_``, so splitting on the first
separator recovers both parts exactly.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, TYPE_CHECKING

from .config import TOOL_NAME_SEPARATOR
from .models import MCPTool

if TYPE_CHECKING:
    from .client_manager import MCPClientManager

logger = logging.getLogger(__name__)


class ToolResolutionError(Exception):
    """Raised when a model-facing tool name maps to no known server."""
    
    def __init__(self, prefixed_name: str, message: str = "Server not found for tool"):
        self.prefixed_name = prefixed_name
        super().__init__(message)


@dataclass
class ToolRoute:
    """Where a prefixed tool name is dispatched to."""
    
    server_id: str
    server_name: str
    tool_name: str


def prefix_tool_name(server_id: str, tool_name: str) -> str:
    return f"{server_id}{TOOL_NAME_SEPARATOR}{tool_name}"


def split_tool_name(prefixed_name: str) -> Tuple[str, str]:
    """Recover ``(server_id, tool_name)`` from a prefixed name.
    
    Raises:
        ToolResolutionError: If the name carries no server prefix.
    """
    server_id, sep, tool_name = prefixed_name.partition(TOOL_NAME_SEPARATOR)
    if not sep or not server_id or not tool_name:
        raise ToolResolutionError(prefixed_name)
    return server_id, tool_name


def to_function_declaration(name: str, tool: MCPTool) -> Dict[str, Any]:
    """Convert an MCP tool into an OpenAI-style function declaration.
    
    Args:
        name: The model-facing (prefixed) tool name.
        tool: The tool as discovered on its server.
    """
    schema = tool.input_schema or {}
    parameters: Dict[str, Any] = {
        "type": "object",
        "properties": schema.get("properties") or {},
    }
    if schema:
        parameters["required"] = schema.get("required") or []
    
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": tool.description or f"Tool: {name}",
            "parameters": parameters,
        },
    }


class ToolCatalog:
    """Function declarations and routes for one conversation turn.
    
    Attributes:
        declarations: Function declarations handed to the model.
        routes: Prefixed tool name to dispatch target.
    """
    
    def __init__(self):
        self.declarations: List[Dict[str, Any]] = []
        self.routes: Dict[str, ToolRoute] = {}
    
    def add(self, server_id: str, server_name: str, tool: MCPTool) -> None:
        name = prefix_tool_name(server_id, tool.name)
        self.declarations.append(to_function_declaration(name, tool))
        self.routes[name] = ToolRoute(
            server_id=server_id,
            server_name=server_name,
            tool_name=tool.name,
        )
    
    def resolve(self, prefixed_name: str) -> ToolRoute:
        """Resolve a model-requested name to its server and original tool name.
        
        Raises:
            ToolResolutionError: If the prefix names no server in this catalog.
        """
        route = self.routes.get(prefixed_name)
        if route is not None:
            return route
        
        server_id, tool_name = split_tool_name(prefixed_name)
        for known in self.routes.values():
            if known.server_id == server_id:
                return ToolRoute(server_id, known.server_name, tool_name)
        raise ToolResolutionError(prefixed_name)
    
    def __len__(self) -> int:
        return len(self.declarations)


async def build_tool_catalog(manager: "MCPClientManager") -> ToolCatalog:
    """Collect tools from all connected servers.
    
    A server whose listing fails is logged and left out.
    """
    catalog = ToolCatalog()
    
    for server_id in manager.get_connected_server_ids():
        try:
            tools = await manager.list_tools(server_id)
        except Exception as e:
            logger.error(f"Failed to get tools from server {server_id}: {e}")
            continue
        
        config = manager.get_server_config(server_id)
        server_name = config.name if config else server_id
        for tool in tools:
            catalog.add(server_id, server_name, tool)
    
    logger.info(f"Tool catalog built with {len(catalog)} tools")
    return catalog
