"""Transport adapters for MCP servers.

Each adapter opens one message-framed, bidirectional channel to a
server and hands the protocol session a (read_stream, write_stream)
pair. Adapters hold no shared state; the adapter kind is chosen from
``MCPServerConfig.transport``.
"""
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from mcp import StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import get_default_environment, stdio_client
from mcp.client.streamable_http import streamablehttp_client

from .config import MCPServerConfig, TransportKind

logger = logging.getLogger(__name__)

Streams = Tuple[Any, Any]


class MCPTransportError(Exception):
    """Raised when a transport cannot be built or opened."""


class UnsupportedTransportError(MCPTransportError):
    
    def __init__(self, transport: str):
        self.transport = transport
        super().__init__(f"Unsupported transport type: {transport}")


class MissingParameterError(MCPTransportError):
    
    def __init__(self, transport: str, parameter: str):
        self.transport = transport
        self.parameter = parameter
        super().__init__(f"{transport} transport requires a {parameter}")


class MCPTransport(Protocol):
    """A channel that can be opened inside an exit stack."""
    
    kind: TransportKind
    
    async def open(self, stack: AsyncExitStack) -> Streams:
        ...


@dataclass
class StdioTransport:
    """Spawns the server as a subprocess and frames messages over stdin/stdout."""
    
    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    kind: TransportKind = TransportKind.STDIO
    
    async def open(self, stack: AsyncExitStack) -> Streams:
        params = StdioServerParameters(
            command=self.command,
            args=self.args,
            env={**get_default_environment(), **self.env} if self.env else None,
        )
        logger.debug(f"Spawning MCP server: {self.command} {' '.join(self.args)}")
        read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
        return read_stream, write_stream


@dataclass
class StreamableHttpTransport:
    """Exchanges messages with the server over a streaming HTTP body."""
    
    url: str
    headers: Optional[Dict[str, str]] = None
    kind: TransportKind = TransportKind.STREAMABLE_HTTP
    
    async def open(self, stack: AsyncExitStack) -> Streams:
        read_stream, write_stream, _ = await stack.enter_async_context(
            streamablehttp_client(self.url, headers=self.headers)
        )
        return read_stream, write_stream


@dataclass
class SseTransport:
    """Receives messages on a server-push stream, posts outbound ones."""
    
    url: str
    headers: Optional[Dict[str, str]] = None
    kind: TransportKind = TransportKind.SSE
    
    async def open(self, stack: AsyncExitStack) -> Streams:
        read_stream, write_stream = await stack.enter_async_context(
            sse_client(self.url, headers=self.headers)
        )
        return read_stream, write_stream


def _build_stdio(config: MCPServerConfig) -> MCPTransport:
    if not config.command:
        raise MissingParameterError("STDIO", "command")
    return StdioTransport(command=config.command, args=list(config.args), env=dict(config.env))


def _build_streamable_http(config: MCPServerConfig) -> MCPTransport:
    if not config.url:
        raise MissingParameterError("Streamable HTTP", "URL")
    return StreamableHttpTransport(url=config.url)


def _build_sse(config: MCPServerConfig) -> MCPTransport:
    if not config.url:
        raise MissingParameterError("SSE", "URL")
    return SseTransport(url=config.url)


_BUILDERS: Dict[TransportKind, Callable[[MCPServerConfig], MCPTransport]] = {
    TransportKind.STDIO: _build_stdio,
    TransportKind.STREAMABLE_HTTP: _build_streamable_http,
    TransportKind.SSE: _build_sse,
}


def create_transport(config: MCPServerConfig) -> MCPTransport:
    """Build the transport adapter for a server definition.
    
    Raises:
        UnsupportedTransportError: If the transport kind is unknown.
        MissingParameterError: If the command (stdio) or URL (http, sse)
            is absent.
    """
    try:
        kind = TransportKind(config.transport)
    except ValueError:
        raise UnsupportedTransportError(str(config.transport))
    return _BUILDERS[kind](config)
