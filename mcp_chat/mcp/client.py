"""MCP Client for connecting to individual MCP servers.

This module provides the MCPClient class, which owns one protocol
session layered over one transport adapter.
"""
import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional

from mcp import ClientSession
from mcp.types import Implementation

from .config import MCPServerConfig
from .models import MCPPrompt, MCPPromptArgument, MCPResource, MCPTool
from .transport import MCPTransport

logger = logging.getLogger(__name__)

CLIENT_VERSION = "1.0.0"


class MCPConnectionError(Exception):
    """MCP connection error."""
    
    def __init__(self, server_id: str, message: str):
        self.server_id = server_id
        super().__init__(f"[{server_id}] {message}")


class MCPNotConnectedError(MCPConnectionError):
    """Raised when an operation targets a server that is not connected."""
    
    def __init__(self, server_id: str):
        super().__init__(server_id, f"Server {server_id} is not connected")


def root_cause(error: BaseException) -> BaseException:
    """Unwrap task-group exception groups down to the first leaf error."""
    while isinstance(error, BaseExceptionGroup) and error.exceptions:
        error = error.exceptions[0]
    return error


class MCPClient:
    """Client for a single MCP server.
    
    The transport and session contexts are entered and exited by one
    background task, so ``connect`` and ``close`` may be awaited from
    different requests.
    
    Attributes:
        server_id: Unique identifier for this server.
        config: Server configuration (held by reference, not modified).
        transport: The transport adapter carrying protocol messages.
        session: Active MCP client session, once initialized.
    """
    
    def __init__(self, config: MCPServerConfig, transport: MCPTransport):
        self.server_id = config.id
        self.config = config
        self.transport = transport
        self.session: Optional[ClientSession] = None
        self._ready: Optional[asyncio.Future] = None
        self._stop: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
    
    @property
    def is_alive(self) -> bool:
        return (
            self.session is not None
            and self._task is not None
            and not self._task.done()
        )
    
    async def connect(self, timeout: float) -> None:
        """Open the transport and run the protocol handshake.
        
        Args:
            timeout: Handshake timeout in seconds.
            
        Raises:
            asyncio.TimeoutError: If the handshake does not finish in time.
            Exception: Whatever the transport or session raised.
        """
        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(), name=f"mcp-client-{self.server_id}"
        )
        
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout=timeout)
        except BaseException:
            await self.close()
            raise
        
        logger.info(
            f"Connected to MCP server '{self.server_id}' "
            f"via {self.transport.kind.value}"
        )
    
    async def _run(self) -> None:
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await self.transport.open(stack)
                session = await stack.enter_async_context(
                    ClientSession(
                        read_stream,
                        write_stream,
                        client_info=Implementation(
                            name=f"mcp-client-{self.server_id}",
                            version=CLIENT_VERSION,
                        ),
                    )
                )
                await session.initialize()
                self.session = session
                self._ready.set_result(None)
                await self._stop.wait()
        except Exception as e:
            if not self._ready.done():
                self._ready.set_exception(root_cause(e))
            else:
                logger.warning(f"MCP session for '{self.server_id}' ended: {root_cause(e)}")
        finally:
            self.session = None
    
    async def close(self) -> None:
        """Stop the session task and release the transport."""
        if self._stop is not None:
            self._stop.set()
        task, self._task = self._task, None
        if task is not None and not task.done():
            if self.session is None:
                # Handshake still in progress.
                task.cancel()
            done, _ = await asyncio.wait({task}, timeout=5.0)
            if not done:
                task.cancel()
                logger.warning(f"Forced shutdown of MCP session for '{self.server_id}'")
        if self._ready is not None and self._ready.done() and not self._ready.cancelled():
            # Mark a failed handshake's exception as retrieved.
            self._ready.exception()
        self.session = None
        logger.info(f"Closed MCP client for '{self.server_id}'")
    
    def _require_session(self) -> ClientSession:
        if not self.is_alive:
            raise MCPNotConnectedError(self.server_id)
        return self.session
    
    async def list_tools(self) -> List[MCPTool]:
        result = await self._require_session().list_tools()
        tools = [
            MCPTool(
                name=tool.name,
                description=tool.description,
                input_schema=tool.inputSchema,
            )
            for tool in result.tools
        ]
        logger.info(
            f"Discovered {len(tools)} tools from '{self.server_id}': "
            f"{[t.name for t in tools]}"
        )
        return tools
    
    async def list_prompts(self) -> List[MCPPrompt]:
        result = await self._require_session().list_prompts()
        return [
            MCPPrompt(
                name=prompt.name,
                description=prompt.description,
                arguments=[
                    MCPPromptArgument(
                        name=arg.name,
                        description=arg.description,
                        required=arg.required,
                    )
                    for arg in prompt.arguments
                ] if prompt.arguments is not None else None,
            )
            for prompt in result.prompts
        ]
    
    async def list_resources(self) -> List[MCPResource]:
        result = await self._require_session().list_resources()
        return [
            MCPResource(
                uri=str(resource.uri),
                name=resource.name,
                description=resource.description,
                mime_type=resource.mimeType,
            )
            for resource in result.resources
        ]
    
    async def call_tool(
        self,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """Call a tool and return the raw ``CallToolResult``.
        
        Raises:
            asyncio.TimeoutError: If the call exceeds ``timeout``.
        """
        session = self._require_session()
        if timeout is None:
            return await session.call_tool(tool_name, arguments or {})
        return await asyncio.wait_for(
            session.call_tool(tool_name, arguments or {}), timeout=timeout
        )
    
    async def get_prompt(
        self,
        prompt_name: str,
        arguments: Optional[Dict[str, str]] = None
    ) -> Any:
        return await self._require_session().get_prompt(prompt_name, arguments)
    
    async def read_resource(self, uri: str) -> Any:
        return await self._require_session().read_resource(uri)
