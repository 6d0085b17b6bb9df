"""MCP Client Manager for managing multiple MCP server connections.

This module provides the MCPClientManager class, the registry that maps
server ids to live protocol clients. One instance is created per
process and shared by every request.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .client import MCPClient, MCPNotConnectedError, root_cause
from .config import MCPServerConfig
from .models import (
    CallResult,
    ConnectionState,
    MCPPrompt,
    MCPResource,
    MCPTool,
    ServerStatus,
    now_ms,
)
from .normalizer import normalize_call_result, to_jsonable
from .transport import MCPTransport, create_transport

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0

ClientFactory = Callable[[MCPServerConfig, MCPTransport], MCPClient]


@dataclass
class ClientInstance:
    """A registered connection: the client, its config and its state."""
    
    client: Optional[MCPClient]
    config: MCPServerConfig
    state: ConnectionState


class MCPClientManager:
    """Registry of MCP server connections.
    
    Connect and disconnect are serialized per server id; operations on
    different ids run independently. State reads take no lock.
    
    Attributes:
        connect_timeout: Default handshake timeout in seconds.
        tool_timeout: Default tool call timeout in seconds (None for no limit).
    """
    
    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        tool_timeout: Optional[float] = None,
        client_factory: ClientFactory = MCPClient,
    ):
        self.connect_timeout = connect_timeout
        self.tool_timeout = tool_timeout
        self._client_factory = client_factory
        self._clients: Dict[str, ClientInstance] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
    
    @asynccontextmanager
    async def _serialized(self, server_id: str):
        """Hold the per-id lock; it is dropped once unused and unregistered."""
        lock = self._locks.get(server_id)
        if lock is None:
            lock = self._locks[server_id] = asyncio.Lock()
        self._lock_users[server_id] = self._lock_users.get(server_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[server_id] -= 1
            if not self._lock_users[server_id]:
                del self._lock_users[server_id]
                if server_id not in self._clients:
                    del self._locks[server_id]
    
    async def connect(self, config: MCPServerConfig) -> ConnectionState:
        """Connect to a server, or return the live connection's state.
        
        Failures never raise: they are reported through the returned
        state with status ERROR and an error message.
        
        Args:
            config: Server definition.
            
        Returns:
            The connection state after the attempt.
        """
        async with self._serialized(config.id):
            existing = self._clients.get(config.id)
            if existing is not None:
                if (
                    existing.state.status == ServerStatus.CONNECTED
                    and existing.client is not None
                    and existing.client.is_alive
                ):
                    return existing.state
                await self._disconnect_locked(config.id)
            
            state = ConnectionState(server_id=config.id, status=ServerStatus.CONNECTING)
            instance = ClientInstance(client=None, config=config, state=state)
            self._clients[config.id] = instance
            timeout = config.timeout or self.connect_timeout
            
            logger.info(f"Connecting to MCP server '{config.id}' ({config.transport})")
            try:
                transport = create_transport(config)
                instance.client = self._client_factory(config, transport)
                await instance.client.connect(timeout)
            except asyncio.TimeoutError:
                instance.client = None
                state.status = ServerStatus.ERROR
                state.error = f"Connection timed out after {timeout}s"
                logger.warning(f"Connection to '{config.id}' timed out after {timeout}s")
                return state
            except Exception as e:
                instance.client = None
                state.status = ServerStatus.ERROR
                state.error = str(root_cause(e)) or "Connection failed"
                logger.warning(f"Connection to '{config.id}' failed: {state.error}")
                return state
            
            state.status = ServerStatus.CONNECTED
            state.connected_at = now_ms()
            return state
    
    async def disconnect(self, server_id: str) -> None:
        """Disconnect a server; a no-op if it is not registered."""
        if server_id not in self._clients and server_id not in self._locks:
            return
        async with self._serialized(server_id):
            await self._disconnect_locked(server_id)
    
    async def _disconnect_locked(self, server_id: str) -> None:
        instance = self._clients.pop(server_id, None)
        if instance is None:
            return
        
        if instance.client is not None:
            try:
                await instance.client.close()
            except Exception as e:
                logger.warning(f"Error closing client {server_id}: {e}")
        
        instance.state.status = ServerStatus.DISCONNECTED
        logger.info(f"Disconnected MCP server '{server_id}'")
    
    async def disconnect_all(self) -> None:
        """Disconnect every registered server concurrently."""
        server_ids = list(self._clients.keys())
        await asyncio.gather(*(self.disconnect(sid) for sid in server_ids))
    
    def get_connection_state(self, server_id: str) -> ConnectionState:
        instance = self._clients.get(server_id)
        if instance is None:
            return ConnectionState(server_id=server_id, status=ServerStatus.DISCONNECTED)
        return instance.state
    
    def get_server_config(self, server_id: str) -> Optional[MCPServerConfig]:
        instance = self._clients.get(server_id)
        return instance.config if instance else None
    
    def get_connected_server_ids(self) -> List[str]:
        """Get a snapshot of the ids whose status is CONNECTED."""
        return [
            server_id for server_id, instance in list(self._clients.items())
            if instance.state.status == ServerStatus.CONNECTED
        ]
    
    def list_states(self) -> List[ConnectionState]:
        return [instance.state for instance in list(self._clients.values())]
    
    def _get_client(self, server_id: str) -> MCPClient:
        instance = self._clients.get(server_id)
        if (
            instance is None
            or instance.state.status != ServerStatus.CONNECTED
            or instance.client is None
        ):
            raise MCPNotConnectedError(server_id)
        
        if not instance.client.is_alive:
            instance.state.status = ServerStatus.ERROR
            instance.state.error = "Connection closed"
            logger.warning(f"MCP server '{server_id}' connection was lost")
            raise MCPNotConnectedError(server_id)
        
        return instance.client
    
    async def list_tools(self, server_id: str) -> List[MCPTool]:
        return await self._get_client(server_id).list_tools()
    
    async def list_prompts(self, server_id: str) -> List[MCPPrompt]:
        return await self._get_client(server_id).list_prompts()
    
    async def list_resources(self, server_id: str) -> List[MCPResource]:
        return await self._get_client(server_id).list_resources()
    
    async def call_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None
    ) -> CallResult:
        """Call a tool and normalize its result.
        
        Raises:
            MCPNotConnectedError: If the server has no live connection.
        """
        client = self._get_client(server_id)
        logger.info(f"Calling tool '{tool_name}' on '{server_id}'")
        raw = await client.call_tool(tool_name, arguments or {}, timeout=self.tool_timeout)
        return normalize_call_result(raw)
    
    async def get_prompt(
        self,
        server_id: str,
        prompt_name: str,
        arguments: Optional[Dict[str, str]] = None
    ) -> Any:
        result = await self._get_client(server_id).get_prompt(prompt_name, arguments)
        return to_jsonable(result)
    
    async def read_resource(self, server_id: str, uri: str) -> Any:
        result = await self._get_client(server_id).read_resource(uri)
        return to_jsonable(result)
